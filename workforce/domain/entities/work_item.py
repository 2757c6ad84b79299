"""WorkItem entity — the engine's view of a unit of human review work."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from workforce.domain.value_objects.enums import (
    EscalationAction,
    EscalationStatus,
    ItemStatus,
    Priority,
    RoleTier,
    WorkItemKind,
)
from workforce.domain.value_objects.kind_profile import KindProfile, profile_for
from workforce.domain.value_objects.work_item_ref import WorkItemRef

ASSIGNABLE_STATUSES = frozenset({ItemStatus.UNASSIGNED, ItemStatus.QUEUED})
ACTIVE_STATUSES = frozenset({ItemStatus.ASSIGNED, ItemStatus.IN_PROGRESS})


@dataclass
class WorkItem:
    ref: WorkItemRef
    department: str
    priority: Priority = Priority.NORMAL
    categories: frozenset[str] = field(default_factory=frozenset)
    status: ItemStatus = ItemStatus.UNASSIGNED
    assigned_to: str | None = None
    assigned_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    escalation_status: EscalationStatus = EscalationStatus.NONE
    escalated_by: str | None = None
    escalated_to: RoleTier | None = None
    escalation_reason: str | None = None
    escalation_feedback: str | None = None
    escalation_action: EscalationAction | None = None
    escalated_at: datetime | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    version: int = 0
    created_at: datetime | None = None

    @property
    def kind(self) -> WorkItemKind:
        return self.ref.kind

    @property
    def item_id(self) -> str:
        return self.ref.item_id

    @property
    def profile(self) -> KindProfile:
        return profile_for(self.ref.kind)

    def skill_categories(self) -> frozenset[str]:
        """Categories an agent's skills are matched against."""
        return frozenset({self.profile.default_category, *self.categories})

    def is_assignable(self) -> bool:
        return self.status in ASSIGNABLE_STATUSES

    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def is_urgent(self) -> bool:
        return self.priority == Priority.URGENT
