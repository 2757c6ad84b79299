"""AssignmentPolicy — the active scoring strategy, behind a guarded setter.

The engine receives the policy object in its constructor instead of reading a
module global, so tests can swap strategies in isolation. A change takes
effect on the next assignment only; nothing already assigned is re-scored.
"""

from __future__ import annotations

import logging
from datetime import datetime

from workforce.domain.clock import utcnow
from workforce.domain.errors import ConfigInvalidError, ForbiddenActionError
from workforce.domain.policies.scoring import AdvancedWeights
from workforce.domain.value_objects.actor import Actor
from workforce.domain.value_objects.enums import StrategyName

logger = logging.getLogger(__name__)


def parse_strategy(name: str) -> StrategyName:
    try:
        return StrategyName((name or "").strip().upper())
    except ValueError:
        valid = ", ".join(s.value for s in StrategyName)
        raise ConfigInvalidError(
            f"Unknown assignment strategy '{name}'. Must be one of: {valid}",
            rule="UNKNOWN_STRATEGY",
        ) from None


class AssignmentPolicy:
    def __init__(
        self,
        strategy: StrategyName = StrategyName.WORKLOAD_BASED,
        weights: AdvancedWeights | None = None,
    ):
        self._strategy = strategy
        self._weights = weights or AdvancedWeights()
        self._updated_by: str | None = None
        self._updated_at: datetime | None = None

    @property
    def strategy(self) -> StrategyName:
        return self._strategy

    @property
    def weights(self) -> AdvancedWeights:
        return self._weights

    def set_strategy(self, name: str, actor: Actor) -> StrategyName:
        """Switch the process-wide strategy. HEAD tier only."""
        if not actor.is_head():
            raise ForbiddenActionError(
                "Only Head can change the assignment strategy", rule="HEAD_ONLY"
            )
        strategy = parse_strategy(name)
        previous = self._strategy
        self._strategy = strategy
        self._updated_by = actor.id
        self._updated_at = utcnow()
        logger.info(
            "Assignment strategy changed %s -> %s by %s",
            previous.value, strategy.value, actor.id,
        )
        return strategy

    def describe(self) -> dict:
        return {
            "strategy": self._strategy.value,
            "available": [s.value for s in StrategyName],
            "weights": self._weights.as_dict(),
            "updated_by": self._updated_by,
            "updated_at": self._updated_at.isoformat() if self._updated_at else None,
        }
