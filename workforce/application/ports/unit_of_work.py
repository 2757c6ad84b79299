"""Port interface for one atomic transaction across all engine repositories."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable

from workforce.application.ports.agent_repo import AgentRepository
from workforce.application.ports.audit_ledger import AuditLedger
from workforce.application.ports.queue_repo import QueueRepository
from workforce.application.ports.round_robin_repo import RoundRobinRepository
from workforce.application.ports.work_item_repo import WorkItemRepository


class UnitOfWork(ABC):
    """``async with uow: ... await uow.commit()``

    Leaving the block without commit rolls everything back, so an item is
    either fully assigned (counters and ledger included) or untouched.
    """

    agents: AgentRepository
    work_items: WorkItemRepository
    ledger: AuditLedger
    queue: QueueRepository
    round_robin: RoundRobinRepository

    async def __aenter__(self) -> UnitOfWork:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.rollback()

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...


UnitOfWorkFactory = Callable[[], UnitOfWork]
