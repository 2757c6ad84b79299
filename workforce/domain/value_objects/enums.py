"""Domain enums — pure Python, no external dependencies."""

from enum import Enum


class RoleTier(str, Enum):
    AGENT = "AGENT"
    SENIOR_AGENT = "SENIOR_AGENT"
    HEAD = "HEAD"

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]

    def dominates(self, other: "RoleTier") -> bool:
        return self.rank >= other.rank


_TIER_RANK = {RoleTier.AGENT: 0, RoleTier.SENIOR_AGENT: 1, RoleTier.HEAD: 2}


class Priority(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.LOW: 0, Priority.NORMAL: 1, Priority.HIGH: 2, Priority.URGENT: 3}


class WorkItemKind(str, Enum):
    ORGANIZER = "ORGANIZER"
    EVENT = "EVENT"


class ItemStatus(str, Enum):
    UNASSIGNED = "UNASSIGNED"
    QUEUED = "QUEUED"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class EscalationStatus(str, Enum):
    NONE = "NONE"
    PENDING = "PENDING"
    REVIEWED = "REVIEWED"


class EscalationAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    RETURN = "return"


class StrategyName(str, Enum):
    WORKLOAD_BASED = "WORKLOAD_BASED"
    ROUND_ROBIN = "ROUND_ROBIN"
    SKILL_BASED = "SKILL_BASED"
    ADVANCED = "ADVANCED"


class LedgerAction(str, Enum):
    ASSIGNED = "ASSIGNED"
    REASSIGNED = "REASSIGNED"
    QUEUED = "QUEUED"
    DEQUEUED = "DEQUEUED"
    STATUS_CHANGED = "STATUS_CHANGED"
    COMPLETED = "COMPLETED"
    ESCALATED = "ESCALATED"
    ESCALATION_REVIEWED = "ESCALATION_REVIEWED"
    ESCALATION_REOPENED = "ESCALATION_REOPENED"


# Records that move ownership of an item; the newest one names the current assignee.
OWNERSHIP_ACTIONS = frozenset({LedgerAction.ASSIGNED, LedgerAction.REASSIGNED})


class QueueHealth(str, Enum):
    HEALTHY = "HEALTHY"
    DEGRADED = "DEGRADED"
    CRITICAL = "CRITICAL"
