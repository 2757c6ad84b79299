"""Tests for ScoringPolicy — every strategy plus the shared tie-break chain."""

from datetime import datetime, timezone

from workforce.domain.entities.agent import Agent
from workforce.domain.entities.work_item import WorkItem
from workforce.domain.policies.performance import AgentPerformance
from workforce.domain.policies.scoring import (
    AdvancedWeights,
    ScoringContext,
    evaluate_candidates,
    rank_candidates,
)
from workforce.domain.value_objects.enums import RoleTier, StrategyName, WorkItemKind
from workforce.domain.value_objects.work_item_ref import WorkItemRef


def _agent(aid, capacity=5, workload=0, tier=RoleTier.AGENT, skills=(), last_activity=None):
    return Agent(
        id=aid, name=aid.upper(), role_tier=tier, department="OPS",
        capacity=capacity, current_workload=workload, skills=set(skills),
        last_activity=last_activity,
    )


def _item(kind=WorkItemKind.ORGANIZER, categories=frozenset()):
    return WorkItem(ref=WorkItemRef(kind, "x1"), department="OPS", categories=categories)


def test_workload_based_prefers_most_free_slots():
    agents = [_agent("a1", capacity=5, workload=4), _agent("a2", capacity=5, workload=1)]
    assert [a.id for a in rank_candidates(_item(), agents, StrategyName.WORKLOAD_BASED)] == ["a2", "a1"]


def test_ties_break_on_recent_activity_then_id():
    older = datetime(2026, 1, 1, tzinfo=timezone.utc)
    newer = datetime(2026, 2, 1, tzinfo=timezone.utc)
    agents = [
        _agent("a3"),
        _agent("a2", last_activity=older),
        _agent("a1"),
        _agent("a4", last_activity=newer),
    ]
    ranked = rank_candidates(_item(), agents, StrategyName.WORKLOAD_BASED)
    assert [a.id for a in ranked] == ["a4", "a2", "a1", "a3"]


def test_ineligible_candidates_listed_last_with_reason():
    agents = [_agent("a1", capacity=1, workload=1), _agent("h1", tier=RoleTier.HEAD), _agent("a2")]
    scored = evaluate_candidates(_item(), agents, StrategyName.WORKLOAD_BASED)
    assert scored[0].agent.id == "a2"
    assert [c.eligible for c in scored] == [True, False, False]
    assert {c.reason for c in scored[1:]} == {"at capacity", "head tier does not take assignments"}


def test_round_robin_prefers_least_served():
    agents = [_agent("a1"), _agent("a2"), _agent("a3")]
    ctx = ScoringContext(rotation_counts={"a1": 2, "a2": 0, "a3": 1})
    assert rank_candidates(_item(), agents, StrategyName.ROUND_ROBIN, ctx)[0].id == "a2"


def test_skill_based_counts_matching_categories():
    agents = [
        _agent("a1", skills={"EVENT_MANAGEMENT"}),
        _agent("a2", skills={"EVENT_MANAGEMENT", "MUSIC"}),
        _agent("a3"),
    ]
    item = _item(WorkItemKind.EVENT, categories=frozenset({"MUSIC"}))
    scored = evaluate_candidates(item, agents, StrategyName.SKILL_BASED)
    assert [c.agent.id for c in scored] == ["a2", "a1", "a3"]
    assert scored[0].breakdown["matched_skills"] == ["EVENT_MANAGEMENT", "MUSIC"]


def test_skill_match_ignores_category_case():
    agents = [_agent("a1"), _agent("a2", skills={"MUSIC"})]
    item = _item(WorkItemKind.EVENT, categories=frozenset({"music"}))
    scored = evaluate_candidates(item, agents, StrategyName.SKILL_BASED)
    assert scored[0].agent.id == "a2"
    assert scored[0].breakdown["matched_skills"] == ["MUSIC"]


def test_skill_based_without_matches_still_assigns():
    """No skilled agent is not a reason to queue: scores tie at zero."""
    ranked = rank_candidates(_item(), [_agent("a2"), _agent("a1")], StrategyName.SKILL_BASED)
    assert [a.id for a in ranked] == ["a1", "a2"]


def test_advanced_uses_neutral_signals_without_history():
    scored = evaluate_candidates(_item(), [_agent("a1", capacity=4, workload=2)], StrategyName.ADVANCED)
    # 0.5 * 0.5 free + 0.25 * 0.5 speed + 0.25 * 1.0 quality
    assert scored[0].score == 0.625


def test_advanced_penalises_returns():
    perf = {
        "a1": AgentPerformance(agent_id="a1", completions=2, returns=2),
        "a2": AgentPerformance(agent_id="a2", completions=4),
    }
    ctx = ScoringContext(performance=perf, weights=AdvancedWeights(capacity=0.0, speed=0.0, quality=1.0))
    ranked = rank_candidates(_item(), [_agent("a1"), _agent("a2")], StrategyName.ADVANCED, ctx)
    assert [a.id for a in ranked] == ["a2", "a1"]


def test_evaluation_is_deterministic():
    agents = [_agent(f"a{i}", workload=i % 3) for i in range(6)]
    first = [c.to_dict() for c in evaluate_candidates(_item(), agents, StrategyName.WORKLOAD_BASED)]
    second = [c.to_dict() for c in evaluate_candidates(_item(), list(reversed(agents)), StrategyName.WORKLOAD_BASED)]
    assert first == second
