"""Per-kind capabilities of a work item.

Each WorkItemKind answers the same small set of questions (which skill
category it needs, which domain statuses still allow an escalation), so the
rest of the engine never branches on the kind itself.
"""

from __future__ import annotations

from dataclasses import dataclass

from workforce.domain.value_objects.enums import WorkItemKind


@dataclass(frozen=True)
class KindProfile:
    kind: WorkItemKind
    default_category: str
    escalatable_statuses: frozenset[str]

    def permits_escalation(self, domain_status: str | None) -> bool:
        if domain_status is None:
            return False
        return domain_status.strip().upper() in self.escalatable_statuses


KIND_PROFILES: dict[WorkItemKind, KindProfile] = {
    WorkItemKind.ORGANIZER: KindProfile(
        kind=WorkItemKind.ORGANIZER,
        default_category="ORGANIZER_VERIFICATION",
        escalatable_statuses=frozenset({"PENDING"}),
    ),
    WorkItemKind.EVENT: KindProfile(
        kind=WorkItemKind.EVENT,
        default_category="EVENT_MANAGEMENT",
        escalatable_statuses=frozenset({"DRAFT"}),
    ),
}


def profile_for(kind: WorkItemKind) -> KindProfile:
    return KIND_PROFILES[kind]
