"""
Single-Flight Guard

Per-job-identity mutual exclusion. The lock registry is built once from the
static job list; a firing that finds its identity already running is skipped
rather than queued.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Iterable

logger = logging.getLogger(__name__)


class SingleFlightGuard:
    """Maps each job identity to a non-blocking exclusive lock."""

    def __init__(self, identities: Iterable[str]) -> None:
        self._locks: dict[str, asyncio.Lock] = {
            identity: asyncio.Lock() for identity in identities
        }

    @property
    def identities(self) -> list[str]:
        return list(self._locks)

    def is_running(self, identity: str) -> bool:
        return self._locks[identity].locked()

    async def run(self, identity: str, fn: Callable[[], Awaitable[object]]) -> bool:
        """
        Run fn unless identity is already running.

        Args:
            identity: Registered job identity
            fn: Coroutine factory for the job body; exceptions propagate

        Returns:
            True if fn ran, False if the firing was skipped

        Raises:
            KeyError: If identity was not registered
        """
        lock = self._locks[identity]

        # Nothing awaits between this check and the acquire below
        if lock.locked():
            logger.warning(
                "Job %s is already running, skipping",
                identity,
                extra={"job": identity},
            )
            return False

        async with lock:
            await fn()
        return True
