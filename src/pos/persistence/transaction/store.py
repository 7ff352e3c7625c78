"""Transactional stores the executor opens its transactions against."""

from __future__ import annotations

from typing import Any, Protocol, Sequence

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction
from sqlalchemy.orm import Session, SessionTransaction

from .policy import IsolationLevel

# SQLite transactions are always serializable; it rejects READ COMMITTED.
_DIALECTS_WITHOUT_ISOLATION = frozenset({"sqlite"})


class TransactionHandle(Protocol):
    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...

    def release(self) -> None:
        ...


class TransactionalStore(Protocol):
    def begin(self, isolation_level: IsolationLevel) -> TransactionHandle:
        ...

    def reload(self, entities: Sequence[object]) -> None:
        ...


class AsyncTransactionHandle(Protocol):
    async def commit(self) -> None:
        ...

    async def rollback(self) -> None:
        ...

    async def release(self) -> None:
        ...


class AsyncTransactionalStore(Protocol):
    async def begin(self, isolation_level: IsolationLevel) -> AsyncTransactionHandle:
        ...

    async def reload(self, entities: Sequence[object]) -> None:
        ...


def _isolation_options(dialect_name: str, level: IsolationLevel) -> dict[str, Any] | None:
    if dialect_name in _DIALECTS_WITHOUT_ISOLATION:
        return None
    return {"isolation_level": level.value}


def _persistent(entities: Sequence[object]) -> list[object]:
    targets = []
    for entity in entities:
        state = sa_inspect(entity, raiseerr=False)
        if state is not None and getattr(state, "persistent", False):
            targets.append(entity)
    return targets


class SqlAlchemyTransaction:
    """Handle for one root transaction on a synchronous session."""

    def __init__(self, session: Session, transaction: SessionTransaction) -> None:
        self._session = session
        self._transaction = transaction
        self.released = False

    def commit(self) -> None:
        self._transaction.commit()

    def rollback(self) -> None:
        self._transaction.rollback()

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        if self._session.get_transaction() is self._transaction:
            self._transaction.close()


class SqlAlchemyStore:
    """Run executor transactions on a long-lived SQLAlchemy ``Session``.

    The session must not already be inside a transaction when ``begin`` is
    called; business operations do their reads inside the executor.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def begin(self, isolation_level: IsolationLevel) -> SqlAlchemyTransaction:
        transaction = self.session.begin()
        handle = SqlAlchemyTransaction(self.session, transaction)
        options = _isolation_options(self.session.get_bind().dialect.name, isolation_level)
        if options:
            try:
                self.session.connection(execution_options=options)
            except Exception:
                handle.release()
                raise
        return handle

    def reload(self, entities: Sequence[object]) -> None:
        """Refresh conflicting entities, or expire everything when none are named."""

        targets = _persistent(entities)
        if not targets:
            self.session.expire_all()
            return
        with self.session.begin():
            for entity in targets:
                self.session.refresh(entity)


class AsyncSqlAlchemyTransaction:
    """Handle for one root transaction on an ``AsyncSession``."""

    def __init__(self, session: AsyncSession, transaction: AsyncSessionTransaction) -> None:
        self._session = session
        self._transaction = transaction
        self.released = False

    async def commit(self) -> None:
        await self._transaction.commit()

    async def rollback(self) -> None:
        await self._transaction.rollback()

    async def release(self) -> None:
        if self.released:
            return
        self.released = True
        sync_transaction = self._transaction.sync_transaction
        if self._session.sync_session.get_transaction() is sync_transaction:
            await self._session.run_sync(lambda _: sync_transaction.close())


class AsyncSqlAlchemyStore:
    """Async counterpart of :class:`SqlAlchemyStore`."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def begin(self, isolation_level: IsolationLevel) -> AsyncSqlAlchemyTransaction:
        transaction = await self.session.begin()
        handle = AsyncSqlAlchemyTransaction(self.session, transaction)
        options = _isolation_options(self.session.get_bind().dialect.name, isolation_level)
        if options:
            try:
                await self.session.connection(execution_options=options)
            except Exception:
                await handle.release()
                raise
        return handle

    async def reload(self, entities: Sequence[object]) -> None:
        targets = _persistent(entities)
        if not targets:
            self.session.expire_all()
            return
        async with self.session.begin():
            for entity in targets:
                await self.session.refresh(entity)


__all__ = [
    "AsyncSqlAlchemyStore",
    "AsyncSqlAlchemyTransaction",
    "AsyncTransactionHandle",
    "AsyncTransactionalStore",
    "SqlAlchemyStore",
    "SqlAlchemyTransaction",
    "TransactionHandle",
    "TransactionalStore",
]
