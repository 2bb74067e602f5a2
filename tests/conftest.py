"""
Shared fixtures and in-memory fakes for the OpenSearch and S3 collaborators.
"""

from datetime import date
from pathlib import Path
from typing import Any

import pytest

from utils.cancellation import CancellationToken
from utils.config import BackupJob, CleanupJob
from utils.errors import RunCancelled
from utils.retry import RetryPolicy
from utils.search import SearchIndex

DAY = date(2026, 10, 18)


class FakeOpenSearchClient:
    """
    Mimics the subset of AsyncOpenSearch used by SearchIndex.

    Document counts are keyed by the window's "gte" bound, e.g.
    {"2026-10-18T04:00:00.000Z": 10}. Bounds listed in fail_on raise.
    """

    def __init__(
        self,
        counts: dict[str, int] | None = None,
        fail_on: set[str] | None = None,
        deleted: int = 0,
    ) -> None:
        self.counts = counts or {}
        self.fail_on = fail_on or set()
        self.deleted = deleted
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.closed = False

    @staticmethod
    def _bounds(body: dict[str, Any]) -> dict[str, str]:
        return next(iter(body["query"]["range"].values()))

    async def count(self, index: str, body: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("count", index, body))
        gte = self._bounds(body)["gte"]
        if gte in self.fail_on:
            raise ConnectionError(f"count failed for {gte}")
        return {"count": self.counts.get(gte, 0)}

    async def search(self, index: str, body: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("search", index, body))
        gte = self._bounds(body)["gte"]
        hits = [
            {"_index": index, "_id": f"{gte}-{i}", "_source": {"@timestamp": gte, "n": i}}
            for i in range(min(body["size"], self.counts.get(gte, 0)))
        ]
        return {
            "took": 1,
            "timed_out": False,
            "hits": {"total": {"value": len(hits), "relation": "eq"}, "hits": hits},
        }

    async def delete_by_query(self, index: str, body: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("delete_by_query", index, body))
        if "delete" in self.fail_on:
            raise ConnectionError("delete_by_query failed")
        return {"took": 5, "deleted": self.deleted, "failures": []}

    async def close(self) -> None:
        self.closed = True


class FakeObjectStore:
    """Stands in for ObjectStore; fails the first `failures` uploads."""

    def __init__(self, failures: int = 0, bucket: str = "backups") -> None:
        self.bucket = bucket
        self.failures = failures
        self.attempts = 0
        self.objects: dict[str, tuple[bytes, str]] = {}

    async def put_file(self, path: Path, key: str, content_type: str, token: CancellationToken) -> str:
        self.attempts += 1
        token.raise_if_cancelled()
        if self.attempts <= self.failures:
            raise ConnectionError(f"upload attempt {self.attempts} refused")
        self.objects[key] = (path.read_bytes(), content_type)
        return f"etag-{self.attempts}"


class RecordingToken(CancellationToken):
    """Cancellation token whose sleeps return immediately and are recorded."""

    def __init__(self) -> None:
        super().__init__()
        self.sleeps: list[float] = []

    async def sleep(self, seconds: float) -> None:
        self.raise_if_cancelled()
        self.sleeps.append(seconds)


async def cancelling_sleep(seconds: float) -> None:
    raise RunCancelled("cancelled during wait")


@pytest.fixture
def token() -> RecordingToken:
    return RecordingToken()


@pytest.fixture
def fake_client() -> FakeOpenSearchClient:
    return FakeOpenSearchClient()


@pytest.fixture
def search(fake_client: FakeOpenSearchClient) -> SearchIndex:
    return SearchIndex(fake_client)


@pytest.fixture
def no_wait_policy() -> RetryPolicy:
    async def _no_sleep(seconds: float) -> None:
        return None

    return RetryPolicy(max_attempts=3, base_delay=2.0, sleep=_no_sleep)


@pytest.fixture
def backup_job() -> BackupJob:
    return BackupJob(
        index_name="app-logs",
        schedule="30 0 * * *",
        interval_hours=2,
        s3_path="/backups/app-logs/",
        request_interval_seconds=0,
    )


@pytest.fixture
def cleanup_job() -> CleanupJob:
    return CleanupJob(index_name="app-logs", retention_days=30, schedule="0 2 * * *")
