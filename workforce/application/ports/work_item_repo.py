"""Port interface for work item persistence."""

from abc import ABC, abstractmethod
from datetime import datetime

from workforce.domain.entities.work_item import WorkItem
from workforce.domain.value_objects.enums import EscalationStatus, ItemStatus, RoleTier
from workforce.domain.value_objects.work_item_ref import WorkItemRef


class WorkItemRepository(ABC):
    @abstractmethod
    async def add(self, item: WorkItem) -> WorkItem:
        """Insert a new item at version 0."""
        ...

    @abstractmethod
    async def get(self, ref: WorkItemRef) -> WorkItem | None:
        ...

    @abstractmethod
    async def save_if_version(self, item: WorkItem, expected_version: int) -> bool:
        """Optimistic write: persist *item* only if the stored version still
        equals *expected_version*. On success bump ``item.version``.

        Returns False when another transaction won the race.
        """
        ...

    @abstractmethod
    async def list_by_agent(
        self, agent_id: str, statuses: frozenset[ItemStatus] | None = None
    ) -> list[WorkItem]:
        ...

    @abstractmethod
    async def count_active_by_agent(self) -> dict[str, int]:
        """Number of ASSIGNED/IN_PROGRESS items per assignee."""
        ...

    @abstractmethod
    async def list_escalations(
        self, status: EscalationStatus, target: RoleTier | None = None
    ) -> list[WorkItem]:
        ...

    @abstractmethod
    async def list_stale_active(self, assigned_before: datetime) -> list[WorkItem]:
        """Active items, never escalated, assigned before the cutoff."""
        ...
