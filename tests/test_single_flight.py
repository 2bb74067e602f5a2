import asyncio

import pytest

from apps.manager.single_flight import SingleFlightGuard


@pytest.mark.asyncio
async def test_second_firing_is_skipped_while_first_runs():
    guard = SingleFlightGuard(["backup:logs"])
    release = asyncio.Event()
    runs = []

    async def body():
        runs.append(1)
        await release.wait()

    first = asyncio.create_task(guard.run("backup:logs", body))
    await asyncio.sleep(0)
    assert guard.is_running("backup:logs")

    assert await guard.run("backup:logs", body) is False

    release.set()
    assert await first is True
    assert runs == [1]
    assert not guard.is_running("backup:logs")


@pytest.mark.asyncio
async def test_different_identities_run_concurrently():
    guard = SingleFlightGuard(["backup:logs", "cleanup:logs"])
    release = asyncio.Event()

    async def body():
        await release.wait()

    first = asyncio.create_task(guard.run("backup:logs", body))
    second = asyncio.create_task(guard.run("cleanup:logs", body))
    await asyncio.sleep(0)

    assert guard.is_running("backup:logs") and guard.is_running("cleanup:logs")
    release.set()
    assert await asyncio.gather(first, second) == [True, True]


@pytest.mark.asyncio
async def test_lock_is_released_after_failure():
    guard = SingleFlightGuard(["backup:logs"])

    async def failing():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await guard.run("backup:logs", failing)

    async def ok():
        return None

    assert await guard.run("backup:logs", ok) is True


@pytest.mark.asyncio
async def test_unknown_identity_is_rejected():
    guard = SingleFlightGuard(["backup:logs"])

    async def body():
        return None

    with pytest.raises(KeyError):
        await guard.run("backup:other", body)
