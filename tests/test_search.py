import pytest

from tests.conftest import FakeOpenSearchClient
from utils.config import OpenSearchConfig
from utils.errors import ConfigError
from utils.search import SearchIndex, build_ssl_context, create_client


def test_missing_certificate_is_fatal(tmp_path):
    with pytest.raises(ConfigError, match="failed to read certificate"):
        build_ssl_context(str(tmp_path / "missing.pem"))


def test_unparseable_certificate_is_fatal(tmp_path):
    cert = tmp_path / "ca.pem"
    cert.write_text("-----BEGIN CERTIFICATE-----\nnot a cert\n-----END CERTIFICATE-----\n")

    with pytest.raises(ConfigError, match="failed to parse certificate"):
        build_ssl_context(str(cert))


def test_client_construction_rejects_bad_certificate(tmp_path):
    config = OpenSearchConfig(addresses=["https://os:9200"], cert_path=str(tmp_path / "nope.pem"))

    with pytest.raises(ConfigError):
        create_client(config)


def test_blank_addresses_are_rejected():
    with pytest.raises(ValueError):
        OpenSearchConfig(addresses=[" ", ""])


@pytest.mark.asyncio
async def test_delete_older_than_returns_deleted_count(token):
    client = FakeOpenSearchClient(deleted=7)
    index = SearchIndex(client, timestamp_field="ts")

    assert await index.delete_older_than("idx", 3, token) == 7
    assert client.calls[0][2] == {"query": {"range": {"ts": {"lte": "now-3d/d"}}}}

    await index.close()
    assert client.closed
