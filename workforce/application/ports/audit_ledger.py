"""Port interface for the append-only audit ledger."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from workforce.domain.entities.assignment_record import AssignmentRecord
from workforce.domain.value_objects.enums import LedgerAction, WorkItemKind
from workforce.domain.value_objects.work_item_ref import WorkItemRef


@dataclass(frozen=True)
class LedgerQuery:
    """Filter for ledger reads. ``agent_id`` matches either side of a move."""

    ref: WorkItemRef | None = None
    kind: WorkItemKind | None = None
    agent_id: str | None = None
    performed_by: str | None = None
    actions: frozenset[LedgerAction] | None = None
    since: datetime | None = None
    until: datetime | None = None
    limit: int | None = 50
    offset: int = 0
    newest_first: bool = True


class AuditLedger(ABC):
    @abstractmethod
    async def append(self, record: AssignmentRecord) -> AssignmentRecord:
        """Insert a record and return it with its id. There is no update or delete."""
        ...

    @abstractmethod
    async def search(self, query: LedgerQuery) -> tuple[list[AssignmentRecord], int]:
        """Return one page of matching records plus the total match count."""
        ...

    @abstractmethod
    async def last_ownership_record(self, ref: WorkItemRef) -> AssignmentRecord | None:
        """Newest ASSIGNED/REASSIGNED record for the item."""
        ...
