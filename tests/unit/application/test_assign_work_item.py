"""Tests for AssignmentEngine with the in-memory unit of work."""

from __future__ import annotations

import asyncio
import logging

import pytest

from workforce.application.use_cases.assign_work_item import (
    OVER_CAPACITY,
    AssignmentResult,
    QueuedResult,
)
from workforce.domain.errors import (
    AssignmentConflictError,
    ConfigInvalidError,
    ForbiddenActionError,
    IneligibleAgentError,
    NotFoundError,
)
from workforce.domain.value_objects.actor import SYSTEM_ACTOR_ID, Actor
from workforce.domain.value_objects.enums import (
    ItemStatus,
    LedgerAction,
    Priority,
    RoleTier,
    StrategyName,
    WorkItemKind,
)
from workforce.domain.value_objects.work_item_ref import WorkItemRef

SENIOR = Actor("s1", RoleTier.SENIOR_AGENT)
HEAD = Actor("h1", RoleTier.HEAD)


# ─── Automatic assignment ───────────────────────────────────────────


@pytest.mark.asyncio
async def test_capacities_2_2_1_never_overfill_small_agent(world):
    """Three items over capacities [2, 2, 1]: ties go to the lowest id, a3 stays within 1."""
    world.add_agent("a1", capacity=2)
    world.add_agent("a2", capacity=2)
    world.add_agent("a3", capacity=1)
    engine = world.engine(StrategyName.WORKLOAD_BASED)

    picks = []
    for n in range(3):
        ref = world.add_domain_item(f"o{n}")
        result = await engine.assign_to_best_agent(ref)
        assert isinstance(result, AssignmentResult)
        picks.append(result.agent_id)

    assert picks[0] == "a1"
    assert world.agent("a3").current_workload <= 1
    assert all(world.agent(a).current_workload <= world.agent(a).capacity for a in ("a1", "a2", "a3"))
    assert world.total_workload() == 3


@pytest.mark.asyncio
async def test_assignment_writes_item_counter_and_ledger(world):
    world.add_agent("a1")
    ref = world.add_domain_item("o1", priority=Priority.HIGH)
    result = await world.engine().assign_to_best_agent(ref, actor=SENIOR)

    item = world.item(ref)
    assert item.status == ItemStatus.ASSIGNED
    assert item.assigned_to == "a1"
    assert item.assigned_at == world.clock()
    assert world.agent("a1").current_workload == 1

    [record] = world.records(LedgerAction.ASSIGNED)
    assert record.id == result.record_id
    assert record.to_agent == "a1"
    assert record.performed_by == "s1"
    assert record.strategy == StrategyName.WORKLOAD_BASED
    assert record.details["priority"] == "HIGH"
    assert result.to_dict()["status"] == "assigned"


@pytest.mark.asyncio
async def test_no_eligible_agent_enqueues(world):
    world.add_agent("a1", capacity=1, workload=1)
    world.add_agent("h1", tier=RoleTier.HEAD)
    ref = world.add_domain_item("o1")

    result = await world.engine().assign_to_best_agent(ref)

    assert isinstance(result, QueuedResult)
    assert result.attempts == 1
    assert world.item(ref).status == ItemStatus.QUEUED
    assert ref in world.store.tables.queue
    assert len(world.records(LedgerAction.QUEUED)) == 1
    assert world.records(LedgerAction.ASSIGNED) == []


@pytest.mark.asyncio
async def test_unknown_item_is_not_found(world):
    world.add_agent("a1")
    with pytest.raises(NotFoundError):
        await world.engine().assign_to_best_agent(WorkItemRef(WorkItemKind.EVENT, "missing"))
    assert world.store.commits == 0


@pytest.mark.asyncio
async def test_already_assigned_item_is_refused(world):
    world.add_agent("a1")
    world.add_agent("a2")
    ref = world.add_domain_item("o1")
    engine = world.engine()
    await engine.assign_to_best_agent(ref)

    with pytest.raises(AssignmentConflictError) as exc:
        await engine.assign_to_best_agent(ref)
    assert exc.value.rule == "ALREADY_ASSIGNED"
    assert len(world.records(LedgerAction.ASSIGNED)) == 1
    assert world.total_workload() == 1


@pytest.mark.asyncio
async def test_priority_override_is_persisted(world):
    world.add_agent("a1")
    ref = world.add_domain_item("o1", priority=Priority.LOW)
    await world.engine().assign_to_best_agent(ref, priority=Priority.URGENT)
    assert world.item(ref).priority == Priority.URGENT


@pytest.mark.asyncio
async def test_round_robin_rotates_through_department(world):
    for aid in ("a1", "a2", "a3"):
        world.add_agent(aid, capacity=10)
    engine = world.engine(StrategyName.ROUND_ROBIN)

    picks = []
    for n in range(6):
        result = await engine.assign_to_best_agent(world.add_domain_item(f"o{n}"))
        picks.append(result.agent_id)

    assert picks == ["a1", "a2", "a3", "a1", "a2", "a3"]


@pytest.mark.asyncio
async def test_skill_based_prefers_matching_agent(world):
    world.add_agent("a1")
    world.add_agent("a2", skills={"EVENT_MANAGEMENT"})
    ref = world.add_domain_item("e1", kind=WorkItemKind.EVENT)
    result = await world.engine(StrategyName.SKILL_BASED).assign_to_best_agent(ref)
    assert result.agent_id == "a2"


# ─── Optimistic concurrency ─────────────────────────────────────────


@pytest.mark.asyncio
async def test_lost_race_is_retried_once(world):
    world.add_agent("a1")
    ref = world.add_domain_item("o1")
    world.store.inject_conflicts = 1

    result = await world.engine().assign_to_best_agent(ref)

    assert result.agent_id == "a1"
    assert world.agent("a1").current_workload == 1
    assert len(world.records(LedgerAction.ASSIGNED)) == 1


@pytest.mark.asyncio
async def test_second_lost_race_surfaces_conflict(world):
    world.add_agent("a1")
    ref = world.add_domain_item("o1")
    world.store.inject_conflicts = 2

    with pytest.raises(AssignmentConflictError) as exc:
        await world.engine().assign_to_best_agent(ref)

    assert exc.value.rule == "OPTIMISTIC_CHECK"
    assert world.agent("a1").current_workload == 0
    assert world.records() == []


@pytest.mark.asyncio
async def test_concurrent_assignments_never_both_succeed(world):
    world.add_agent("a1")
    world.add_agent("a2")
    ref = world.add_domain_item("o1")
    engine = world.engine()

    results = await asyncio.gather(
        engine.assign_to_best_agent(ref),
        engine.assign_to_best_agent(ref),
        return_exceptions=True,
    )

    won = [r for r in results if isinstance(r, AssignmentResult)]
    lost = [r for r in results if isinstance(r, AssignmentConflictError)]
    assert len(won) == 1 and len(lost) == 1
    assert len(world.records(LedgerAction.ASSIGNED)) == 1
    assert world.total_workload() == 1
    assert world.item(ref).assigned_to == won[0].agent_id


@pytest.mark.asyncio
async def test_concurrent_assignments_share_last_slot(world):
    """Two items race for an agent with one free slot; only one gets it."""
    world.add_agent("a1", capacity=1)
    first = world.add_domain_item("o1")
    second = world.add_domain_item("o2")
    engine = world.engine()

    results = await asyncio.gather(
        engine.assign_to_best_agent(first),
        engine.assign_to_best_agent(second),
    )

    assert sorted(type(r).__name__ for r in results) == ["AssignmentResult", "QueuedResult"]
    assert world.agent("a1").current_workload == 1
    assert world.agent("a1").current_workload <= world.agent("a1").capacity
    assert len(world.records(LedgerAction.ASSIGNED)) == 1
    assert world.store.held_slots == {"a1": 0}


# ─── Manual assignment and reassignment ─────────────────────────────


@pytest.mark.asyncio
async def test_manual_assignment_over_capacity_warns(world):
    world.add_agent("a1", capacity=1, workload=1)
    ref = world.add_domain_item("o1")

    result = await world.engine().assign_to_agent(ref, "a1", SENIOR, reason="Only specialist")

    assert result.warnings == [OVER_CAPACITY]
    assert world.agent("a1").current_workload == 2
    [record] = world.records(LedgerAction.ASSIGNED)
    assert record.details["manual"] is True
    assert record.details["warnings"] == [OVER_CAPACITY]


@pytest.mark.asyncio
async def test_manual_assignment_checks_department(world):
    world.add_agent("f1", department="FINANCE")
    ref = world.add_domain_item("o1")
    with pytest.raises(IneligibleAgentError) as exc:
        await world.engine().assign_to_agent(ref, "f1", SENIOR)
    assert exc.value.rule == "department mismatch"


@pytest.mark.asyncio
async def test_manual_assignment_requires_supervisor(world):
    world.add_agent("a1")
    ref = world.add_domain_item("o1")
    with pytest.raises(ForbiddenActionError):
        await world.engine().assign_to_agent(ref, "a1", Actor("a2", RoleTier.AGENT))


@pytest.mark.asyncio
async def test_reserved_system_id_grants_nothing(world):
    world.add_agent("a1")
    ref = world.add_domain_item("o1")
    with pytest.raises(ForbiddenActionError):
        await world.engine().assign_to_agent(ref, "a1", Actor(SYSTEM_ACTOR_ID, RoleTier.AGENT))
    assert world.records() == []


@pytest.mark.asyncio
async def test_reassign_moves_counters_and_logs(world):
    world.add_agent("a1")
    world.add_agent("a2")
    ref = world.add_assigned_item("o1", "a1", status=ItemStatus.IN_PROGRESS, started_at=world.clock())

    result = await world.engine().reassign(ref, "a2", "Rebalance", HEAD)

    assert result.from_agent == "a1"
    item = world.item(ref)
    assert item.assigned_to == "a2"
    assert item.status == ItemStatus.ASSIGNED
    assert item.started_at is None
    assert world.agent("a1").current_workload == 0
    assert world.agent("a2").current_workload == 1
    [record] = world.records(LedgerAction.REASSIGNED)
    assert (record.from_agent, record.to_agent) == ("a1", "a2")
    assert record.details["previous_status"] == "IN_PROGRESS"


@pytest.mark.asyncio
async def test_reassign_to_same_agent_is_refused(world):
    world.add_agent("a1")
    ref = world.add_assigned_item("o1", "a1")
    with pytest.raises(IneligibleAgentError) as exc:
        await world.engine().reassign(ref, "a1", None, HEAD)
    assert exc.value.rule == "SAME_AGENT"


@pytest.mark.asyncio
async def test_reassign_unassigned_item_is_conflict(world):
    world.add_agent("a1")
    ref = world.add_domain_item("o1")
    engine = world.engine()
    world.add_agent("a2", capacity=0)
    await engine.assign_to_best_agent(ref)
    await engine.complete(ref, Actor("a1", RoleTier.AGENT))

    with pytest.raises(AssignmentConflictError) as exc:
        await engine.reassign(ref, "a2", None, HEAD)
    assert exc.value.rule == "NOT_ASSIGNED"


# ─── Lifecycle ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_start_and_complete_by_assignee(world):
    world.add_agent("a1")
    ref = world.add_domain_item("o1")
    engine = world.engine()
    await engine.assign_to_best_agent(ref)
    owner = Actor("a1", RoleTier.AGENT)

    world.clock.advance(minutes=5)
    started = await engine.start_work(ref, owner)
    assert started["status"] == "IN_PROGRESS"
    assert world.agent("a1").last_activity == world.clock()

    world.clock.advance(minutes=25)
    done = await engine.complete(ref, owner, reason="Verified documents")
    assert done["status"] == "COMPLETED"
    assert done["resolution_seconds"] == 1800.0
    assert world.agent("a1").current_workload == 0

    [record] = world.records(LedgerAction.COMPLETED)
    assert record.details["previous_status"] == "IN_PROGRESS"
    assert len(world.records(LedgerAction.STATUS_CHANGED)) == 1


@pytest.mark.asyncio
async def test_peer_cannot_complete_someone_elses_item(world):
    world.add_agent("a1")
    world.add_agent("a2")
    ref = world.add_assigned_item("o1", "a1")
    engine = world.engine()

    with pytest.raises(ForbiddenActionError):
        await engine.complete(ref, Actor("a2", RoleTier.AGENT))

    await engine.complete(ref, SENIOR)
    assert world.item(ref).status == ItemStatus.COMPLETED


@pytest.mark.asyncio
async def test_start_requires_assigned_status(world):
    world.add_agent("a1")
    ref = world.add_assigned_item("o1", "a1", status=ItemStatus.IN_PROGRESS)
    with pytest.raises(AssignmentConflictError):
        await world.engine().start_work(ref, Actor("a1", RoleTier.AGENT))


@pytest.mark.asyncio
async def test_last_ownership_record_tracks_assignee(world):
    for aid in ("a1", "a2", "a3"):
        world.add_agent(aid)
    ref = world.add_domain_item("o1")
    engine = world.engine()

    async def ledger_owner():
        async with world.uow_factory() as uow:
            record = await uow.ledger.last_ownership_record(ref)
        return record.to_agent

    await engine.assign_to_best_agent(ref)
    assert await ledger_owner() == world.item(ref).assigned_to == "a1"
    await engine.reassign(ref, "a2", None, HEAD)
    assert await ledger_owner() == world.item(ref).assigned_to == "a2"
    await engine.reassign(ref, "a3", None, HEAD)
    assert await ledger_owner() == world.item(ref).assigned_to == "a3"
    await engine.complete(ref, HEAD)
    assert await ledger_owner() == world.item(ref).assigned_to == "a3"

    owner = await world.history().ownership(ref)
    assert owner["consistent"] is True
    assert owner["status"] == "COMPLETED"


@pytest.mark.asyncio
async def test_release_of_drifted_counter_is_logged(world, caplog):
    world.add_agent("a1")
    ref = world.add_assigned_item("o1", "a1")
    world.agent("a1").current_workload = 0

    with caplog.at_level(logging.WARNING, logger="workforce.application.use_cases.assign_work_item"):
        await world.engine().complete(ref, HEAD)

    assert world.agent("a1").current_workload == 0
    assert "already 0" in caplog.text
    assert "a1" in caplog.text


@pytest.mark.asyncio
async def test_workload_matches_active_items_after_mixed_operations(world):
    for aid in ("a1", "a2", "a3"):
        world.add_agent(aid, capacity=3)
    engine = world.engine()
    refs = [world.add_domain_item(f"o{n}") for n in range(7)]

    for ref in refs:
        await engine.assign_to_best_agent(ref)
    await engine.reassign(refs[0], "a3" if world.item(refs[0]).assigned_to != "a3" else "a2", None, HEAD)
    await engine.complete(refs[1], HEAD)
    await engine.reassign(refs[2], "a1" if world.item(refs[2]).assigned_to != "a1" else "a2", None, HEAD)

    assert world.total_workload() == world.active_items()


# ─── Strategy and scoring preview ───────────────────────────────────


@pytest.mark.asyncio
async def test_scoring_preview_has_no_side_effects(world):
    world.add_agent("a1", workload=2)
    world.add_agent("a2", workload=1)
    world.add_agent("h1", tier=RoleTier.HEAD)
    ref = world.add_domain_item("o1")
    engine = world.engine()

    first = await engine.test_assignment_scoring(ref)
    second = await engine.test_assignment_scoring(ref)

    assert first == second
    assert [c["agent_id"] for c in first["candidates"]] == ["a2", "a1", "h1"]
    assert first["candidates"][2]["eligible"] is False
    assert world.store.commits == 0
    assert world.store.tables.items == {}
    assert world.total_workload() == 3


@pytest.mark.asyncio
async def test_strategy_change_is_head_only(world):
    engine = world.engine()
    with pytest.raises(ForbiddenActionError):
        engine.set_assignment_strategy("ROUND_ROBIN", SENIOR)

    described = engine.set_assignment_strategy("round_robin", HEAD)
    assert described["strategy"] == "ROUND_ROBIN"
    assert described["updated_by"] == "h1"
    assert engine.get_assignment_strategy()["strategy"] == "ROUND_ROBIN"


@pytest.mark.asyncio
async def test_unknown_strategy_is_config_error(world):
    with pytest.raises(ConfigInvalidError) as exc:
        world.engine().set_assignment_strategy("FASTEST", HEAD)
    assert exc.value.rule == "UNKNOWN_STRATEGY"
