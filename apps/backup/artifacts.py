"""
Artifact Merge, Compression and Reclamation

Blocking file work for a backup run. Callers run these functions in a worker
thread (asyncio.to_thread).
"""

import gzip
import logging
import shutil
from datetime import date
from pathlib import Path
from typing import Iterable

import orjson

from apps.backup.extractor import artifact_stem
from utils.errors import CompressionError, MergeError

logger = logging.getLogger(__name__)

COMPRESSION_LEVEL = 9


def count_hits(payload: bytes) -> int:
    """Number of documents in a serialized search response."""
    response = orjson.loads(payload)
    return len(response["hits"]["hits"])


def merge_artifacts(
    paths: list[Path], work_dir: Path, index_name: str, day: date
) -> tuple[Path, int]:
    """
    Concatenate window files into one day file.

    Each window file is parsed to count its documents, then rewound and
    copied byte for byte, so the day file is exactly the ordered
    concatenation of its inputs.

    Returns:
        (day file path, total documents across all windows)

    Raises:
        MergeError: If a window file cannot be read, parsed or copied
    """
    merged_path = work_dir / f"{artifact_stem(day, index_name)}.json"
    total = 0

    try:
        with open(merged_path, "wb") as merged:
            for path in paths:
                with open(path, "rb") as source:
                    try:
                        total += count_hits(source.read())
                    except (orjson.JSONDecodeError, KeyError, TypeError) as e:
                        raise MergeError(f"failed to decode JSON from {path}: {e}") from e
                    source.seek(0)
                    shutil.copyfileobj(source, merged)
    except MergeError:
        merged_path.unlink(missing_ok=True)
        raise
    except OSError as e:
        merged_path.unlink(missing_ok=True)
        raise MergeError(f"failed to merge into {merged_path}: {e}") from e

    logger.info(
        "Merged %d files into %s (total documents: %d)",
        len(paths), merged_path, total,
    )
    return merged_path, total


def compress_artifact(path: Path) -> Path:
    """
    Gzip a file next to itself, embedding the original file name.

    Output is written to a .part file and renamed only once complete.

    Returns:
        Path of the .gz file

    Raises:
        CompressionError: If reading, compressing or writing fails
    """
    compressed_path = path.with_name(path.name + ".gz")
    partial_path = path.with_name(path.name + ".gz.part")

    try:
        with open(path, "rb") as source, open(partial_path, "wb") as dest:
            with gzip.GzipFile(
                filename=path.name,
                mode="wb",
                compresslevel=COMPRESSION_LEVEL,
                fileobj=dest,
            ) as gz:
                shutil.copyfileobj(source, gz)
        partial_path.replace(compressed_path)
    except OSError as e:
        partial_path.unlink(missing_ok=True)
        raise CompressionError(f"failed to compress {path}: {e}") from e

    logger.info("Compressed %s to %s", path, compressed_path)
    return compressed_path


def reclaim(paths: Iterable[Path]) -> int:
    """
    Delete temporary files, ignoring ones that are already gone.

    Returns:
        Number of files removed
    """
    removed = 0
    for path in paths:
        try:
            path.unlink()
            removed += 1
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.warning("Failed to remove temporary file %s: %s", path, e)
    return removed
