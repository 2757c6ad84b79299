"""SqlUnitOfWork — one AsyncSession transaction shared by every repository."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from workforce.adapters.persistence.database import async_session_factory
from workforce.adapters.persistence.repositories import (
    SqlAgentRepository,
    SqlAuditLedger,
    SqlQueueRepository,
    SqlRoundRobinRepository,
    SqlWorkItemRepository,
)
from workforce.application.ports.unit_of_work import UnitOfWork


class SqlUnitOfWork(UnitOfWork):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = async_session_factory):
        self._session_factory = session_factory
        self._session: AsyncSession | None = None

    async def __aenter__(self) -> SqlUnitOfWork:
        self._session = self._session_factory()
        self.agents = SqlAgentRepository(self._session)
        self.work_items = SqlWorkItemRepository(self._session)
        self.ledger = SqlAuditLedger(self._session)
        self.queue = SqlQueueRepository(self._session)
        self.round_robin = SqlRoundRobinRepository(self._session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await self.rollback()
        finally:
            await self._session.close()
            self._session = None

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()


def sql_uow_factory(
    session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
):
    """Zero-argument factory the use cases call once per transaction."""
    return lambda: SqlUnitOfWork(session_factory)
