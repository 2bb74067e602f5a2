import logging

import orjson

from utils.logging import JsonFormatter, setup_logging


def _record(**extra):
    record = logging.LogRecord("apps.backup", logging.INFO, __file__, 1, "Merged %d files", (2,), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_extra_fields():
    line = JsonFormatter().format(_record(index="app-logs", documents=15))
    payload = orjson.loads(line)

    assert payload["msg"] == "Merged 2 files"
    assert payload["level"] == "info"
    assert payload["logger"] == "apps.backup"
    assert payload["index"] == "app-logs"
    assert payload["documents"] == 15


def test_json_formatter_stringifies_unknown_types(tmp_path):
    payload = orjson.loads(JsonFormatter().format(_record(path=tmp_path)))
    assert payload["path"] == str(tmp_path)


def test_setup_logging_silences_client_loggers():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        setup_logging(level="DEBUG", format_type="text")

        assert root.level == logging.DEBUG
        assert logging.getLogger("botocore").level == logging.WARNING
        assert logging.getLogger("opensearch").level == logging.WARNING
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
