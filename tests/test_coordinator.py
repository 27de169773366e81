import asyncio

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from core.coordinator import ConsistencyCoordinator, KeyedLock, StaleStateError, is_retryable
from shared.errors import ConflictError


@pytest.mark.asyncio
async def test_keyed_lock_serializes_same_key_only():
    locks = KeyedLock()
    order = []

    async def worker(key, name, delay):
        async with locks.hold(key):
            order.append(f"{name}-in")
            await asyncio.sleep(delay)
            order.append(f"{name}-out")

    await asyncio.gather(worker("a", "first", 0.02), worker("a", "second", 0), worker("b", "other", 0))

    assert order.index("first-out") < order.index("second-in")
    assert order.index("other-in") < order.index("first-out")
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_keyed_lock_released_on_cancellation():
    locks = KeyedLock()
    entered = asyncio.Event()

    async def holder():
        async with locks.hold("k"):
            entered.set()
            await asyncio.sleep(10)

    task = asyncio.create_task(holder())
    await entered.wait()
    assert locks.is_locked("k")

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert not locks.is_locked("k")
    assert len(locks) == 0


def test_is_retryable():
    assert is_retryable(StaleStateError())
    assert is_retryable(IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")))
    assert is_retryable(OperationalError("BEGIN", {}, Exception("database is locked")))
    assert not is_retryable(OperationalError("SELECT", {}, Exception("no such table")))
    assert not is_retryable(ValueError("boom"))


@pytest.mark.asyncio
async def test_run_with_retry_recovers_from_transient_conflict():
    coordinator = ConsistencyCoordinator(max_retries=2, retry_backoff=0)
    attempts = []

    async def operation():
        attempts.append(1)
        if len(attempts) < 3:
            raise StaleStateError()
        return "done"

    assert await coordinator.run_with_retry(operation, description="test") == "done"
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_run_with_retry_gives_up_with_conflict_error():
    coordinator = ConsistencyCoordinator(max_retries=1, retry_backoff=0)

    async def operation():
        raise StaleStateError()

    with pytest.raises(ConflictError) as excinfo:
        await coordinator.run_with_retry(operation, description="test", conflict_message="busy")
    assert excinfo.value.message == "busy"


@pytest.mark.asyncio
async def test_run_with_retry_propagates_other_errors():
    coordinator = ConsistencyCoordinator(max_retries=5, retry_backoff=0)
    attempts = []

    async def operation():
        attempts.append(1)
        raise KeyError("missing")

    with pytest.raises(KeyError):
        await coordinator.run_with_retry(operation, description="test")
    assert len(attempts) == 1
