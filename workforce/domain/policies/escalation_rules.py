"""EscalationRules — which escalation transitions are legal.

Tier ladder:
    AGENT         → SENIOR_AGENT or HEAD
    SENIOR_AGENT  → HEAD
    HEAD          → (none, already the top tier)

Each check raises InvalidEscalationError with the rule that failed; the
message is shown to support staff as-is.
"""

from __future__ import annotations

from workforce.domain.entities.work_item import WorkItem
from workforce.domain.errors import InvalidEscalationError
from workforce.domain.value_objects.enums import EscalationStatus, RoleTier

MIN_TEXT_LENGTH = 10

_TIER_LABELS = {
    RoleTier.AGENT: "Agent",
    RoleTier.SENIOR_AGENT: "Senior Agent",
    RoleTier.HEAD: "Head",
}

VALID_TARGETS: dict[RoleTier, frozenset[RoleTier]] = {
    RoleTier.AGENT: frozenset({RoleTier.SENIOR_AGENT, RoleTier.HEAD}),
    RoleTier.SENIOR_AGENT: frozenset({RoleTier.HEAD}),
    RoleTier.HEAD: frozenset(),
}


def check_text(text: str | None, label: str, min_length: int = MIN_TEXT_LENGTH) -> str:
    cleaned = (text or "").strip()
    if len(cleaned) < min_length:
        raise InvalidEscalationError(
            InvalidEscalationError.REASON_TOO_SHORT,
            f"{label} must be at least {min_length} characters",
        )
    return cleaned


def check_target(by: RoleTier, target: RoleTier) -> None:
    """Tier rules only; state rules are checked by check_can_escalate."""
    if target not in (RoleTier.SENIOR_AGENT, RoleTier.HEAD):
        raise InvalidEscalationError(
            InvalidEscalationError.INVALID_TARGET,
            "Invalid escalation target. Must be SENIOR_AGENT or HEAD",
        )
    if by == RoleTier.HEAD:
        raise InvalidEscalationError(
            InvalidEscalationError.WRONG_TIER,
            "Head cannot escalate - already at top level",
        )
    if target not in VALID_TARGETS[by]:
        raise InvalidEscalationError(
            InvalidEscalationError.WRONG_TIER,
            f"{_TIER_LABELS[by]} cannot escalate to {_TIER_LABELS[target]}",
        )


def check_can_escalate(item: WorkItem, by: RoleTier, target: RoleTier, domain_status: str | None) -> None:
    check_target(by, target)
    if item.escalation_status != EscalationStatus.NONE:
        raise InvalidEscalationError(
            InvalidEscalationError.ALREADY_ESCALATED,
            f"{item.ref} has already been escalated ({item.escalation_status.value})",
        )
    if not item.profile.permits_escalation(domain_status):
        allowed = ", ".join(sorted(item.profile.escalatable_statuses))
        raise InvalidEscalationError(
            InvalidEscalationError.NOT_ELIGIBLE_STATE,
            f"Can only escalate {item.kind.value.lower()} items in {allowed} status (current: {domain_status})",
        )


def check_can_review(item: WorkItem, by: RoleTier) -> None:
    if by != RoleTier.HEAD:
        raise InvalidEscalationError(
            InvalidEscalationError.WRONG_TIER,
            "Only Head can provide feedback",
        )
    if item.escalation_status != EscalationStatus.PENDING:
        raise InvalidEscalationError(
            InvalidEscalationError.NOT_PENDING,
            f"{item.ref} is not in pending escalation status",
        )
    if item.escalated_to is None or not by.dominates(item.escalated_to):
        target = item.escalated_to.value if item.escalated_to else "nobody"
        raise InvalidEscalationError(
            InvalidEscalationError.WRONG_TIER,
            f"{_TIER_LABELS[by]} cannot review an escalation addressed to {target}",
        )


def check_can_reopen(item: WorkItem) -> None:
    if item.escalation_status != EscalationStatus.REVIEWED:
        raise InvalidEscalationError(
            InvalidEscalationError.NOT_ELIGIBLE_STATE,
            f"{item.ref} can only be re-opened after review (current: {item.escalation_status.value})",
        )
