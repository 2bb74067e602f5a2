"""
Cooperative Cancellation

A single CancellationToken is created when the process starts and handed to
every job. Collaborator calls are wrapped with token.run() so that a shutdown
signal aborts in-flight index and storage requests, and sleeps go through
token.sleep() so pacing and retry waits end early on shutdown.
"""

import asyncio
import logging
from typing import Awaitable, TypeVar

from utils.errors import RunCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Process-wide cancellation signal backed by an asyncio.Event."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        if not self._event.is_set():
            logger.info("Cancellation requested")
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelled("operation cancelled by shutdown")

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, seconds: float) -> None:
        """
        Sleep for the given duration, returning early if cancelled.

        Raises:
            RunCancelled: If the token fires before or during the sleep
        """
        self.raise_if_cancelled()
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise RunCancelled("sleep interrupted by shutdown")

    async def run(self, aw: Awaitable[T]) -> T:
        """
        Await a collaborator call, abandoning it if the token fires first.

        Raises:
            RunCancelled: If the token fires before the call completes
        """
        if self._event.is_set():
            # Close un-awaited coroutines so they do not leak warnings
            if asyncio.iscoroutine(aw):
                aw.close()
            raise RunCancelled("operation cancelled by shutdown")

        task = asyncio.ensure_future(aw)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug("Abandoned call failed after cancellation", extra={"error": str(e)})
        raise RunCancelled("operation cancelled by shutdown")
