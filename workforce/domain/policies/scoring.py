"""ScoringPolicy — rank candidate agents for a work item under a named strategy.

All strategies share the same eligibility filter (same department, below
capacity, not a head) and the same final tie-break chain so that identical
inputs always produce an identical ranking:

    score DESC → free slots DESC → last activity DESC → id ASC
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from workforce.domain.entities.agent import Agent
from workforce.domain.entities.work_item import WorkItem
from workforce.domain.policies.eligibility import ineligibility_reason
from workforce.domain.policies.performance import AgentPerformance
from workforce.domain.value_objects.enums import StrategyName

# Neutral signals for agents with no ledger history yet.
NEUTRAL_SPEED = 0.5
NEUTRAL_QUALITY = 1.0


@dataclass(frozen=True)
class AdvancedWeights:
    capacity: float = 0.5
    speed: float = 0.25
    quality: float = 0.25

    def as_dict(self) -> dict[str, float]:
        return {"capacity": self.capacity, "speed": self.speed, "quality": self.quality}


@dataclass(frozen=True)
class ScoringContext:
    """Strategy inputs that live outside the agent snapshot."""

    rotation_counts: Mapping[str, int] = field(default_factory=dict)
    performance: Mapping[str, AgentPerformance] = field(default_factory=dict)
    weights: AdvancedWeights = field(default_factory=AdvancedWeights)


@dataclass(frozen=True)
class CandidateScore:
    agent: Agent
    score: float
    eligible: bool
    reason: str | None = None
    breakdown: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "agent_id": self.agent.id,
            "agent_name": self.agent.name,
            "score": self.score,
            "eligible": self.eligible,
            "reason": self.reason,
            "breakdown": self.breakdown,
        }


def _workload_tiebreak(agent: Agent) -> tuple:
    ts = agent.last_activity.timestamp() if agent.last_activity else float("-inf")
    return (-agent.free_slots, -ts, agent.id)


def _score_workload(agent: Agent, item: WorkItem, ctx: ScoringContext) -> tuple[float, dict]:
    return float(agent.free_slots), {
        "free_slots": agent.free_slots,
        "workload": agent.current_workload,
        "capacity": agent.capacity,
    }


def _score_round_robin(agent: Agent, item: WorkItem, ctx: ScoringContext) -> tuple[float, dict]:
    served = ctx.rotation_counts.get(agent.id, 0)
    return float(-served), {"served_since_reset": served}


def _score_skill(agent: Agent, item: WorkItem, ctx: ScoringContext) -> tuple[float, dict]:
    matched = sorted({c.upper() for c in item.skill_categories() if agent.has_skill(c)})
    return float(len(matched)), {"matched_skills": matched}


def _score_advanced(agent: Agent, item: WorkItem, ctx: ScoringContext) -> tuple[float, dict]:
    w = ctx.weights
    free_ratio = max(agent.free_slots, 0) / agent.capacity if agent.capacity > 0 else 0.0

    perf = ctx.performance.get(agent.id)
    avg_seconds = perf.avg_resolution_seconds if perf else None
    if avg_seconds is None:
        speed = NEUTRAL_SPEED
    else:
        speed = 1.0 / (1.0 + avg_seconds / 3600.0)
    if perf is None or perf.samples == 0:
        quality = NEUTRAL_QUALITY
    else:
        quality = 1.0 - perf.return_rate

    score = w.capacity * free_ratio + w.speed * speed + w.quality * quality
    return round(score, 4), {
        "free_ratio": round(free_ratio, 4),
        "speed": round(speed, 4),
        "quality": round(quality, 4),
        "weights": w.as_dict(),
    }


SCORERS: dict[StrategyName, Callable[[Agent, WorkItem, ScoringContext], tuple[float, dict]]] = {
    StrategyName.WORKLOAD_BASED: _score_workload,
    StrategyName.ROUND_ROBIN: _score_round_robin,
    StrategyName.SKILL_BASED: _score_skill,
    StrategyName.ADVANCED: _score_advanced,
}


def evaluate_candidates(
    item: WorkItem,
    candidates: list[Agent],
    strategy: StrategyName,
    ctx: ScoringContext | None = None,
) -> list[CandidateScore]:
    """Score every candidate, eligible ones first, each group best first.

    Pure and side-effect free: the same snapshot yields the same list.
    """
    ctx = ctx or ScoringContext()
    scorer = SCORERS[strategy]

    scored = []
    for agent in candidates:
        score, breakdown = scorer(agent, item, ctx)
        reason = ineligibility_reason(agent, item)
        scored.append(
            CandidateScore(
                agent=agent,
                score=score,
                eligible=reason is None,
                reason=reason,
                breakdown=breakdown,
            )
        )

    scored.sort(key=lambda c: (not c.eligible, -c.score, *_workload_tiebreak(c.agent)))
    return scored


def rank_candidates(
    item: WorkItem,
    candidates: list[Agent],
    strategy: StrategyName,
    ctx: ScoringContext | None = None,
) -> list[Agent]:
    """Eligible agents only, best first. Empty means the caller must enqueue."""
    return [c.agent for c in evaluate_candidates(item, candidates, strategy, ctx) if c.eligible]
