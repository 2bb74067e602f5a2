"""
Retry Policy

Small reusable wrapper around tenacity for collaborator calls that should be
attempted more than once. Waits grow linearly: base_delay after the first
failure, 2 * base_delay after the second, and so on.

Usage:
    policy = RetryPolicy(max_attempts=3, base_delay=2.0)
    etag = await policy.call(lambda: store.put_file(...), operation="upload", token=token)
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_not_exception_type,
    stop_after_attempt,
)

from utils.cancellation import CancellationToken
from utils.errors import RetryExhausted, RunCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded attempts with linear backoff."""

    max_attempts: int = 3
    base_delay: float = 2.0
    sleep: Optional[Callable[[float], Awaitable[None]]] = None

    def backoff(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        return self.base_delay * attempt

    def _wait(self, retry_state: RetryCallState) -> float:
        return self.backoff(retry_state.attempt_number)

    async def call(
        self,
        fn: Callable[[], Awaitable[T]],
        *,
        operation: str,
        token: CancellationToken | None = None,
    ) -> T:
        """
        Run fn until it succeeds or max_attempts is reached.

        fn is invoked fresh for every attempt. Cancellation is never retried.

        Args:
            fn: Zero-argument coroutine factory
            operation: Human readable name used in logs and errors
            token: Optional cancellation token; its sleep is used between attempts

        Returns:
            Result of the first successful attempt

        Raises:
            RetryExhausted: If every attempt failed (chained to the last error)
            RunCancelled: If the token fired
        """
        sleep = self.sleep
        if sleep is None:
            sleep = token.sleep if token is not None else asyncio.sleep

        def log_attempt(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            logger.error(
                "%s attempt %d failed",
                operation,
                retry_state.attempt_number,
                extra={
                    "attempt": retry_state.attempt_number,
                    "max_attempts": self.max_attempts,
                    "error": str(error),
                },
            )

        def log_wait(retry_state: RetryCallState) -> None:
            delay = retry_state.next_action.sleep if retry_state.next_action else 0
            logger.info("Retrying %s in %.1fs...", operation, delay)

        retrying = AsyncRetrying(
            sleep=sleep,
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_not_exception_type(RunCancelled),
            after=log_attempt,
            before_sleep=log_wait,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    return await fn()
        except RetryError as e:
            last_error = e.last_attempt.exception()
            raise RetryExhausted(operation, self.max_attempts, last_error) from last_error

        raise RuntimeError(f"{operation} stopped without an outcome")
