"""Port interface for the owning domains (organizer verification, event review)."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from workforce.domain.value_objects.enums import EscalationAction, Priority
from workforce.domain.value_objects.work_item_ref import WorkItemRef


@dataclass(frozen=True)
class DomainItemInfo:
    department: str
    priority: Priority = Priority.NORMAL
    domain_status: str | None = None
    categories: frozenset[str] = field(default_factory=frozenset)


class DomainGateway(ABC):
    @abstractmethod
    async def get_work_item(self, ref: WorkItemRef) -> DomainItemInfo | None:
        """Return the owning domain's view of the item, or None if unknown."""
        ...

    @abstractmethod
    async def apply_escalation_decision(
        self, ref: WorkItemRef, action: EscalationAction, feedback: str
    ) -> None:
        """Hand the reviewed decision to the owning domain, which updates its own status."""
        ...
