from dataclasses import dataclass

import pytest

from tests.conftest import cancelling_sleep
from utils.errors import RetryExhausted, RunCancelled
from utils.retry import RetryPolicy


class Flaky:
    def __init__(self, failures):
        self.failures = failures
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError(f"boom {self.calls}")
        return "ok"


def _recording_policy(**kwargs):
    waits = []

    async def sleep(seconds):
        waits.append(seconds)

    return RetryPolicy(sleep=sleep, **kwargs), waits


def test_backoff_is_linear():
    policy = RetryPolicy(base_delay=2.0)
    assert [policy.backoff(n) for n in (1, 2, 3)] == [2.0, 4.0, 6.0]


@pytest.mark.asyncio
async def test_succeeds_on_third_attempt_with_linear_waits():
    policy, waits = _recording_policy(max_attempts=3, base_delay=2.0)
    fn = Flaky(failures=2)

    assert await policy.call(fn, operation="upload") == "ok"
    assert fn.calls == 3
    assert waits == [2.0, 4.0]


@pytest.mark.asyncio
async def test_first_success_does_not_wait():
    policy, waits = _recording_policy()
    fn = Flaky(failures=0)

    assert await policy.call(fn, operation="upload") == "ok"
    assert fn.calls == 1
    assert waits == []


@pytest.mark.asyncio
async def test_exhaustion_reports_attempts_and_last_error():
    policy, waits = _recording_policy(max_attempts=3, base_delay=1.5)
    fn = Flaky(failures=10)

    with pytest.raises(RetryExhausted) as excinfo:
        await policy.call(fn, operation="upload")

    assert fn.calls == 3
    assert waits == [1.5, 3.0]
    assert excinfo.value.attempts == 3
    assert str(excinfo.value.last_error) == "boom 3"
    assert excinfo.value.__cause__ is excinfo.value.last_error
    assert "after 3 attempts" in str(excinfo.value)


@pytest.mark.asyncio
async def test_cancellation_is_never_retried():
    policy, waits = _recording_policy()
    calls = []

    async def cancelled():
        calls.append(1)
        raise RunCancelled("stop")

    with pytest.raises(RunCancelled):
        await policy.call(cancelled, operation="upload")

    assert calls == [1]
    assert waits == []


@pytest.mark.asyncio
async def test_cancellation_during_wait_stops_retrying():
    policy = RetryPolicy(max_attempts=3, base_delay=2.0, sleep=cancelling_sleep)
    fn = Flaky(failures=5)

    with pytest.raises(RunCancelled):
        await policy.call(fn, operation="upload")

    assert fn.calls == 1


@pytest.mark.asyncio
async def test_token_sleep_is_used_when_no_sleep_given(token):
    policy = RetryPolicy(max_attempts=2, base_delay=0.5)
    fn = Flaky(failures=1)

    assert await policy.call(fn, operation="upload", token=token) == "ok"
    assert token.sleeps == [0.5]


@pytest.mark.asyncio
async def test_lambda_coroutine_factory_is_awaited_on_every_attempt():
    policy, waits = _recording_policy(max_attempts=3, base_delay=1.0)
    fn = Flaky(failures=1)

    assert await policy.call(lambda: fn(), operation="upload") == "ok"
    assert fn.calls == 2
    assert waits == [1.0]


@dataclass(frozen=True)
class ConstantPolicy(RetryPolicy):
    def backoff(self, attempt):
        return 0.25


@pytest.mark.asyncio
async def test_waits_come_from_backoff():
    waits = []

    async def sleep(seconds):
        waits.append(seconds)

    policy = ConstantPolicy(max_attempts=3, sleep=sleep)
    fn = Flaky(failures=2)

    assert await policy.call(fn, operation="upload") == "ok"
    assert waits == [0.25, 0.25]
