"""Actor — the caller on whose behalf an engine operation runs."""

from __future__ import annotations

from dataclasses import dataclass

from workforce.domain.value_objects.enums import RoleTier

SYSTEM_ACTOR_ID = "SYSTEM"


@dataclass(frozen=True)
class Actor:
    id: str
    tier: RoleTier
    # Only scheduled jobs hold this; an id alone never grants it.
    system: bool = False

    @property
    def is_system(self) -> bool:
        return self.system

    def is_head(self) -> bool:
        return self.tier == RoleTier.HEAD


# Scheduled jobs act with the lowest tier so escalation rules still apply to them.
SYSTEM_ACTOR = Actor(id=SYSTEM_ACTOR_ID, tier=RoleTier.AGENT, system=True)
