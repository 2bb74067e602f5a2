"""
Window Extraction - Count Probe and Document Download

For one time window: ask the index how many documents it holds, then fetch
exactly that many in a single sorted search and write the raw response to a
window file.

The whole window is fetched in one page. Windows larger than the engine's
result window (index.max_result_window, 10000 by default) will be rejected
by the cluster; a warning is logged before the request is made.
"""

import asyncio
import logging
from datetime import date
from pathlib import Path

import orjson

from utils.cancellation import CancellationToken
from utils.errors import ExtractionError, RunCancelled
from utils.schemas import TimeWindow
from utils.search import SearchIndex

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULT_WINDOW = 10_000


def artifact_stem(day: date, index_name: str) -> str:
    """Common file name prefix for every artifact of a run."""
    return f"{day:%m-%d-%y}-{index_name}"


def window_artifact_path(work_dir: Path, day: date, index_name: str, sequence: int) -> Path:
    return work_dir / f"{artifact_stem(day, index_name)}-{sequence}.json"


async def probe_count(
    search: SearchIndex, index_name: str, window: TimeWindow, token: CancellationToken
) -> int:
    """
    Count documents inside a window.

    Raises:
        ExtractionError: If the count query fails
        RunCancelled: If shutdown was requested
    """
    try:
        return await search.count(index_name, window, token)
    except RunCancelled:
        raise
    except Exception as e:
        raise ExtractionError(f"failed to get count for window {window}: {e}") from e


async def extract_window(
    search: SearchIndex,
    index_name: str,
    window: TimeWindow,
    expected: int,
    path: Path,
    token: CancellationToken,
) -> Path:
    """
    Fetch a window's documents in one request and save the raw response.

    Raises:
        ExtractionError: If the search or the file write fails
        RunCancelled: If shutdown was requested
    """
    if expected > DEFAULT_MAX_RESULT_WINDOW:
        logger.warning(
            "Window %d holds %d documents, above the default result window of %d; "
            "the request may be rejected",
            window.sequence, expected, DEFAULT_MAX_RESULT_WINDOW,
            extra={"index": index_name, "window": window.sequence, "count": expected},
        )

    try:
        response = await search.search(index_name, window, expected, token)
    except RunCancelled:
        raise
    except Exception as e:
        raise ExtractionError(f"failed to search window {window}: {e}") from e

    def _save_response() -> None:
        path.write_bytes(orjson.dumps(response, option=orjson.OPT_APPEND_NEWLINE))

    try:
        await asyncio.to_thread(_save_response)
    except (OSError, TypeError) as e:
        path.unlink(missing_ok=True)
        raise ExtractionError(f"failed to save window {window.sequence} to {path}: {e}") from e

    return path


async def download_window(
    search: SearchIndex,
    index_name: str,
    window: TimeWindow,
    work_dir: Path,
    day: date,
    token: CancellationToken,
) -> Path | None:
    """
    Probe and download one window.

    Returns:
        Path of the window file, or None when the window is empty
    """
    logger.info(
        "Downloading period %d: %s",
        window.sequence, window,
        extra={"index": index_name, "window": window.sequence},
    )

    count = await probe_count(search, index_name, window, token)
    if count == 0:
        logger.info("No documents found for period %d", window.sequence)
        return None

    logger.info("Found %d documents for period %d", count, window.sequence)

    path = window_artifact_path(work_dir, day, index_name, window.sequence)
    return await extract_window(search, index_name, window, count, path, token)
