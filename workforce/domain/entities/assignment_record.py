"""AssignmentRecord — one append-only ledger entry. Never mutated once written."""

from dataclasses import dataclass, field
from datetime import datetime

from workforce.domain.value_objects.enums import LedgerAction, StrategyName
from workforce.domain.value_objects.work_item_ref import WorkItemRef


@dataclass(frozen=True)
class AssignmentRecord:
    id: int | None
    ref: WorkItemRef
    action: LedgerAction
    performed_by: str
    performed_at: datetime
    from_agent: str | None = None
    to_agent: str | None = None
    strategy: StrategyName | None = None
    reason: str | None = None
    details: dict = field(default_factory=dict)
