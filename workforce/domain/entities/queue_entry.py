"""QueueEntry — a work item waiting for an eligible agent."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from workforce.domain.value_objects.enums import Priority
from workforce.domain.value_objects.work_item_ref import WorkItemRef


@dataclass
class QueueEntry:
    ref: WorkItemRef
    priority: Priority
    department: str
    enqueued_at: datetime
    attempts: int = 1
    last_attempt_at: datetime | None = None
    last_failure_reason: str | None = None
    stuck: bool = False

    def record_attempt(
        self,
        reason: str | None,
        at: datetime,
        max_attempts: int,
        priority: Priority | None = None,
    ) -> None:
        """Bump the attempt counter in place; the entry is never duplicated."""
        self.attempts += 1
        self.last_attempt_at = at
        self.last_failure_reason = reason
        if priority is not None:
            self.priority = priority
        if self.attempts >= max_attempts:
            self.stuck = True

    def age_seconds(self, now: datetime) -> float:
        return max((now - self.enqueued_at).total_seconds(), 0.0)

    def sort_key(self) -> tuple:
        """Priority descending, then oldest first."""
        return (-self.priority.rank, self.enqueued_at, str(self.ref))
