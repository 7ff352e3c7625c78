from __future__ import annotations

import pytest

from src.pos.exceptions import ConcurrencyConflictError, NotFoundError
from src.pos.persistence.transaction import (
    AsyncTransactionManager,
    TransactionError,
    TransactionFailure,
)
from tests.helpers.transactions import AsyncFakeStore, FakeStore, RecordingLogger, lock_error


class AsyncScript:
    def __init__(self, outcomes) -> None:
        self._outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.mark.asyncio
async def test_async_success_commits_once() -> None:
    store = AsyncFakeStore()
    logger = RecordingLogger()
    manager = AsyncTransactionManager(store, logger=logger, sleep=lambda _: None)

    result = await manager.run(AsyncScript(["receipt-1"]), "CreateSale")

    assert result == "receipt-1"
    assert store.sync.commits == 1
    assert store.sync.rollbacks == 0
    assert store.sync.handles[0].releases == 1
    assert len(logger.committed) == 1


@pytest.mark.asyncio
async def test_async_retries_contention_with_awaited_backoff() -> None:
    store = AsyncFakeStore()
    waited: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        waited.append(seconds)

    operation = AsyncScript([lock_error(), ConcurrencyConflictError("stale"), "ok"])
    manager = AsyncTransactionManager(store, logger=RecordingLogger(), sleep=fake_sleep)

    assert await manager.run(operation, "RecordSale") == "ok"

    assert operation.calls == 3
    assert waited == pytest.approx([0.2, 0.2])
    assert store.sync.reloaded == [()]
    assert store.sync.max_open_handles == 1


@pytest.mark.asyncio
async def test_async_non_transient_failure_is_not_retried() -> None:
    store = AsyncFakeStore()
    logger = RecordingLogger()
    missing = NotFoundError("product 'sku-1' not found")
    manager = AsyncTransactionManager(store, logger=logger, sleep=lambda _: None)

    with pytest.raises(TransactionError) as exc_info:
        await manager.run(AsyncScript([missing, "ok"]), "AdjustStock", max_retries=3)

    assert exc_info.value.reason is TransactionFailure.NON_TRANSIENT
    assert exc_info.value.cause is missing
    assert store.sync.begin_calls == 1
    assert len(logger.levels("error")) == 1
    assert logger.levels("warning") == []


@pytest.mark.asyncio
async def test_async_exhaustion_wraps_last_error() -> None:
    store = AsyncFakeStore()
    logger = RecordingLogger()
    last = lock_error("deadlock detected")
    manager = AsyncTransactionManager(store, logger=logger, sleep=lambda _: None)

    with pytest.raises(TransactionError) as exc_info:
        await manager.run(AsyncScript([lock_error(), last]), "Op", max_retries=2)

    assert exc_info.value.retries_exhausted
    assert exc_info.value.cause is last
    assert [handle.releases for handle in store.sync.handles] == [1, 1]
    assert len(logger.levels("critical")) == 1


@pytest.mark.asyncio
async def test_async_accepts_plain_callables_and_void_operations() -> None:
    store = AsyncFakeStore()
    manager = AsyncTransactionManager(store, logger=RecordingLogger(), sleep=lambda _: None)
    seen: list[str] = []

    assert await manager.run(lambda: 7, "Sync") == 7
    assert await manager.run_void(lambda: seen.append("void"), "Void") is None

    assert seen == ["void"]
    assert store.sync.commits == 2


@pytest.mark.asyncio
async def test_async_release_failure_after_commit_keeps_the_result() -> None:
    store = AsyncFakeStore(FakeStore(release_errors=[lock_error("lock wait timeout")]))
    logger = RecordingLogger()
    operation = AsyncScript(["ok", "second run"])
    manager = AsyncTransactionManager(store, logger=logger, sleep=lambda _: None)

    assert await manager.run(operation, "Op") == "ok"

    assert operation.calls == 1
    assert store.sync.commits == 1
    assert logger.levels("warning") == []
    [release_error] = logger.levels("error")
    assert release_error["committed"] is True


@pytest.mark.asyncio
async def test_async_release_failure_after_rollback_keeps_original_error() -> None:
    missing = NotFoundError("product 'sku-1' not found")
    store = AsyncFakeStore(FakeStore(release_errors=[RuntimeError("connection already closed")]))
    manager = AsyncTransactionManager(store, logger=RecordingLogger(), sleep=lambda _: None)

    with pytest.raises(TransactionError) as exc_info:
        await manager.run(AsyncScript([missing]), "AdjustStock")

    assert exc_info.value.cause is missing
    assert store.sync.rollbacks == 1
