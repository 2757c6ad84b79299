"""Port interface for the assignment backlog queue."""

from abc import ABC, abstractmethod

from workforce.domain.entities.queue_entry import QueueEntry
from workforce.domain.value_objects.work_item_ref import WorkItemRef


class QueueRepository(ABC):
    @abstractmethod
    async def get(self, ref: WorkItemRef) -> QueueEntry | None:
        ...

    @abstractmethod
    async def upsert(self, entry: QueueEntry) -> QueueEntry:
        """One entry per ref: insert, or overwrite the existing one."""
        ...

    @abstractmethod
    async def delete(self, ref: WorkItemRef) -> bool:
        ...

    @abstractmethod
    async def list_ordered(self, limit: int | None = None) -> list[QueueEntry]:
        """Priority descending, then oldest first."""
        ...
