"""AssignmentEngine — the only writer of ``assigned_to``/``status`` on work items.

Every state change runs in one unit of work:

    optimistic version check → item fields → workload counters → ledger
    → queue bookkeeping → round-robin bookkeeping → commit

so an item is either fully assigned or untouched. A lost optimistic race is
retried once on fresh state and then surfaces as AssignmentConflictError.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TypeVar

from workforce.application.assignment_policy import AssignmentPolicy
from workforce.application.ports.domain_gateway import DomainGateway, DomainItemInfo
from workforce.application.ports.unit_of_work import UnitOfWork, UnitOfWorkFactory
from workforce.application.use_cases.assignment_history import load_performance
from workforce.domain.clock import utcnow
from workforce.domain.entities.agent import Agent
from workforce.domain.entities.assignment_record import AssignmentRecord
from workforce.domain.entities.queue_entry import QueueEntry
from workforce.domain.entities.work_item import WorkItem
from workforce.domain.errors import (
    AssignmentConflictError,
    ForbiddenActionError,
    IneligibleAgentError,
    NotFoundError,
)
from workforce.domain.policies.eligibility import is_eligible, manual_ineligibility_reason
from workforce.domain.policies.round_robin import effective_counts, rotation_complete, rotation_key
from workforce.domain.policies.scoring import ScoringContext, evaluate_candidates
from workforce.domain.value_objects.actor import SYSTEM_ACTOR, Actor
from workforce.domain.value_objects.enums import (
    ItemStatus,
    LedgerAction,
    Priority,
    RoleTier,
    StrategyName,
)
from workforce.domain.value_objects.work_item_ref import WorkItemRef

logger = logging.getLogger(__name__)

T = TypeVar("T")

OVER_CAPACITY = "OVER_CAPACITY"
MAX_ATTEMPTS = 2


class StaleItemError(Exception):
    """The item's version moved under us; the transaction must be retried."""


@dataclass
class AssignmentResult:
    ref: WorkItemRef
    agent_id: str
    action: LedgerAction
    strategy: StrategyName | None = None
    from_agent: str | None = None
    score: float | None = None
    warnings: list[str] = field(default_factory=list)
    record_id: int | None = None

    def to_dict(self) -> dict:
        return {
            "status": "assigned",
            "type": self.ref.kind.value,
            "item_id": self.ref.item_id,
            "agent_id": self.agent_id,
            "from_agent": self.from_agent,
            "action": self.action.value,
            "strategy": self.strategy.value if self.strategy else None,
            "score": self.score,
            "warnings": self.warnings,
            "record_id": self.record_id,
        }


@dataclass
class QueuedResult:
    ref: WorkItemRef
    reason: str
    attempts: int
    stuck: bool = False

    def to_dict(self) -> dict:
        return {
            "status": "queued",
            "type": self.ref.kind.value,
            "item_id": self.ref.item_id,
            "reason": self.reason,
            "attempts": self.attempts,
            "stuck": self.stuck,
        }


# ── Shared helpers (also used by the queue and escalation use cases) ──


async def register_item(
    uow: UnitOfWork,
    ref: WorkItemRef,
    info: DomainItemInfo,
    at: datetime,
    priority: Priority | None = None,
) -> WorkItem:
    """First sighting of an item: create its engine record in UNASSIGNED."""
    item = WorkItem(
        ref=ref,
        department=info.department,
        priority=priority or info.priority,
        categories=frozenset(c.upper() for c in info.categories),
        status=ItemStatus.UNASSIGNED,
        created_at=at,
    )
    item = await uow.work_items.add(item)
    logger.info("Registered %s (department=%s, priority=%s)", ref, item.department, item.priority.value)
    return item


async def save_item(uow: UnitOfWork, item: WorkItem, expected_version: int) -> None:
    if not await uow.work_items.save_if_version(item, expected_version):
        raise StaleItemError(str(item.ref))


async def release_workload(uow: UnitOfWork, agent_id: str, ref: WorkItemRef) -> None:
    """Give back the slot *ref* held; a counter that was already zero is drift."""
    if await uow.agents.adjust_workload(agent_id, -1) < 0:
        logger.warning(
            "Workload counter of %s was already 0 when %s released it; reconcile_workloads will resync",
            agent_id, ref,
        )


async def stage_enqueue(
    uow: UnitOfWork,
    item: WorkItem,
    reason: str,
    at: datetime,
    max_attempts: int,
    actor: Actor = SYSTEM_ACTOR,
) -> QueueEntry:
    """Put *item* in the backlog inside the caller's transaction.

    Idempotent: an item already queued keeps its single entry and only
    its attempt counters move.
    """
    if item.status == ItemStatus.UNASSIGNED:
        expected = item.version
        item.status = ItemStatus.QUEUED
        await save_item(uow, item, expected)

    entry = await uow.queue.get(item.ref)
    if entry is None:
        entry = QueueEntry(
            ref=item.ref,
            priority=item.priority,
            department=item.department,
            enqueued_at=at,
            last_attempt_at=at,
            last_failure_reason=reason,
            stuck=max_attempts <= 1,
        )
        await uow.queue.upsert(entry)
        await uow.ledger.append(
            AssignmentRecord(
                id=None,
                ref=item.ref,
                action=LedgerAction.QUEUED,
                performed_by=actor.id,
                performed_at=at,
                reason=reason,
                details={"priority": item.priority.value, "department": item.department},
            )
        )
        logger.warning("%s queued: %s", item.ref, reason)
        return entry

    was_stuck = entry.stuck
    entry.record_attempt(reason, at, max_attempts, priority=item.priority)
    await uow.queue.upsert(entry)
    if entry.stuck and not was_stuck:
        logger.warning("%s marked stuck after %d attempts: %s", item.ref, entry.attempts, reason)
    return entry


def supervises(actor: Actor) -> bool:
    return actor.is_system or actor.tier.dominates(RoleTier.SENIOR_AGENT)


async def retry_on_stale(op: str, ref: WorkItemRef, attempt: Callable[[], Awaitable[T]]) -> T:
    """Run *attempt*; on a lost optimistic check run it once more on fresh state."""
    for n in range(1, MAX_ATTEMPTS + 1):
        try:
            return await attempt()
        except StaleItemError:
            logger.warning("%s of %s lost the optimistic check (attempt %d/%d)", op, ref, n, MAX_ATTEMPTS)
    raise AssignmentConflictError(
        f"{ref} was modified concurrently; {op} gave up after retry",
        rule="OPTIMISTIC_CHECK",
    )


class AssignmentEngine:
    """Assign, reassign, start and complete work items."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        gateway: DomainGateway,
        policy: AssignmentPolicy,
        max_queue_attempts: int = 10,
        performance_window: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = utcnow,
    ):
        self._uow_factory = uow_factory
        self._gateway = gateway
        self._policy = policy
        self._max_queue_attempts = max_queue_attempts
        self._performance_window = performance_window
        self._clock = clock

    # ── Strategy configuration ──

    def get_assignment_strategy(self) -> dict:
        return self._policy.describe()

    def set_assignment_strategy(self, name: str, actor: Actor) -> dict:
        self._policy.set_strategy(name, actor)
        return self._policy.describe()

    # ── Assignment ──

    async def assign_to_best_agent(
        self,
        ref: WorkItemRef,
        priority: Priority | None = None,
        actor: Actor = SYSTEM_ACTOR,
        reason: str | None = None,
    ) -> AssignmentResult | QueuedResult:
        return await retry_on_stale(
            "auto-assign", ref, lambda: self._try_assign_best(ref, priority, actor, reason)
        )

    async def assign_to_agent(
        self,
        ref: WorkItemRef,
        agent_id: str,
        actor: Actor,
        reason: str | None = None,
    ) -> AssignmentResult:
        """Manual first assignment. Capacity is advisory here, department and tier are not."""
        if not supervises(actor):
            raise ForbiddenActionError("Senior Agent or Head required", rule="SUPERVISOR_ONLY")
        return await retry_on_stale(
            "manual assign", ref, lambda: self._try_assign_to(ref, agent_id, actor, reason)
        )

    async def reassign(
        self,
        ref: WorkItemRef,
        new_agent_id: str,
        reason: str | None,
        actor: Actor,
    ) -> AssignmentResult:
        if not supervises(actor):
            raise ForbiddenActionError("Senior Agent or Head required", rule="SUPERVISOR_ONLY")
        return await retry_on_stale(
            "reassign", ref, lambda: self._try_reassign(ref, new_agent_id, reason, actor)
        )

    async def test_assignment_scoring(
        self, ref: WorkItemRef, priority: Priority | None = None
    ) -> dict:
        """Score every department candidate for *ref* without side effects.

        The item is not registered, no counter moves and nothing is appended
        to the ledger; the transaction is always rolled back.
        """
        strategy = self._policy.strategy
        async with self._uow_factory() as uow:
            item = await uow.work_items.get(ref)
            if item is None:
                info = await self._gateway.get_work_item(ref)
                if info is None:
                    raise NotFoundError(f"Work item {ref} not found")
                item = WorkItem(
                    ref=ref,
                    department=info.department,
                    priority=info.priority,
                    categories=frozenset(c.upper() for c in info.categories),
                )
            if priority is not None:
                item = dataclasses.replace(item, priority=priority)

            candidates = await uow.agents.list_by_department(item.department)
            ctx = await self._scoring_context(uow, strategy, item, candidates)
            scored = evaluate_candidates(item, candidates, strategy, ctx)

        return {
            "type": ref.kind.value,
            "item_id": ref.item_id,
            "department": item.department,
            "priority": item.priority.value,
            "strategy": strategy.value,
            "candidates": [c.to_dict() for c in scored],
        }

    # ── Lifecycle ──

    async def start_work(self, ref: WorkItemRef, actor: Actor) -> dict:
        return await retry_on_stale("start", ref, lambda: self._try_start(ref, actor))

    async def complete(self, ref: WorkItemRef, actor: Actor, reason: str | None = None) -> dict:
        return await retry_on_stale("complete", ref, lambda: self._try_complete(ref, actor, reason))

    # ── Transactions ──

    async def _try_assign_best(
        self,
        ref: WorkItemRef,
        priority: Priority | None,
        actor: Actor,
        reason: str | None,
    ) -> AssignmentResult | QueuedResult:
        now = self._clock()
        strategy = self._policy.strategy
        async with self._uow_factory() as uow:
            item = await self._load_or_register(uow, ref, priority, now)
            self._ensure_assignable(item)
            if priority is not None and item.priority != priority:
                expected = item.version
                item.priority = priority
                await save_item(uow, item, expected)

            candidates = await uow.agents.list_by_department(item.department)
            ctx = await self._scoring_context(uow, strategy, item, candidates)
            eligible = [c for c in evaluate_candidates(item, candidates, strategy, ctx) if c.eligible]

            if not eligible:
                why = f"No eligible agent in department {item.department}"
                entry = await stage_enqueue(
                    uow, item, why, now, self._max_queue_attempts, actor
                )
                await uow.commit()
                return QueuedResult(ref=ref, reason=why, attempts=entry.attempts, stuck=entry.stuck)

            best = eligible[0]
            agent = best.agent
            queue_wait = await self._take_ownership(uow, item, agent.id, now)
            if not await uow.agents.reserve_slot(agent.id):
                # Another transaction took the last slot since candidates were read.
                raise StaleItemError(f"{ref}: agent {agent.id} is at capacity")

            details = {
                "score": best.score,
                "priority": item.priority.value,
                "department": item.department,
            }
            if queue_wait is not None:
                details["from_queue"] = True
                details["queue_wait_seconds"] = queue_wait
            record = await uow.ledger.append(
                AssignmentRecord(
                    id=None,
                    ref=ref,
                    action=LedgerAction.ASSIGNED,
                    performed_by=actor.id,
                    performed_at=now,
                    to_agent=agent.id,
                    strategy=strategy,
                    reason=reason or f"Auto-assigned using {strategy.value} strategy",
                    details=details,
                )
            )

            if strategy == StrategyName.ROUND_ROBIN:
                await self._advance_rotation(uow, item, [c.agent for c in eligible], agent.id)

            await uow.commit()

        logger.info("%s assigned to %s (%s, score=%s)", ref, agent.id, strategy.value, best.score)
        return AssignmentResult(
            ref=ref,
            agent_id=agent.id,
            action=LedgerAction.ASSIGNED,
            strategy=strategy,
            score=best.score,
            record_id=record.id,
        )

    async def _try_assign_to(
        self, ref: WorkItemRef, agent_id: str, actor: Actor, reason: str | None
    ) -> AssignmentResult:
        now = self._clock()
        async with self._uow_factory() as uow:
            item = await self._load_or_register(uow, ref, None, now)
            self._ensure_assignable(item)
            agent = await self._get_agent(uow, agent_id)
            self._ensure_manually_eligible(agent, item)
            warnings = self._capacity_warnings(agent, ref)

            queue_wait = await self._take_ownership(uow, item, agent.id, now)
            await uow.agents.adjust_workload(agent.id, +1)

            details: dict = {"manual": True, "priority": item.priority.value, "warnings": warnings}
            if queue_wait is not None:
                details["from_queue"] = True
                details["queue_wait_seconds"] = queue_wait
            record = await uow.ledger.append(
                AssignmentRecord(
                    id=None,
                    ref=ref,
                    action=LedgerAction.ASSIGNED,
                    performed_by=actor.id,
                    performed_at=now,
                    to_agent=agent.id,
                    reason=reason or "Manual assignment",
                    details=details,
                )
            )
            await uow.commit()

        logger.info("%s manually assigned to %s by %s", ref, agent.id, actor.id)
        return AssignmentResult(
            ref=ref,
            agent_id=agent.id,
            action=LedgerAction.ASSIGNED,
            warnings=warnings,
            record_id=record.id,
        )

    async def _try_reassign(
        self, ref: WorkItemRef, new_agent_id: str, reason: str | None, actor: Actor
    ) -> AssignmentResult:
        now = self._clock()
        async with self._uow_factory() as uow:
            item = await self._get_item(uow, ref)
            if not item.is_active():
                raise AssignmentConflictError(
                    f"{ref} is {item.status.value}; only assigned items can be reassigned",
                    rule="NOT_ASSIGNED",
                )
            if item.assigned_to == new_agent_id:
                raise IneligibleAgentError(
                    f"{ref} is already assigned to {new_agent_id}", rule="SAME_AGENT"
                )
            agent = await self._get_agent(uow, new_agent_id)
            self._ensure_manually_eligible(agent, item)
            warnings = self._capacity_warnings(agent, ref)

            from_agent = item.assigned_to
            previous_status = item.status
            expected = item.version
            item.assigned_to = agent.id
            item.assigned_at = now
            item.status = ItemStatus.ASSIGNED
            item.started_at = None
            await save_item(uow, item, expected)

            if from_agent:
                await release_workload(uow, from_agent, ref)
            await uow.agents.adjust_workload(agent.id, +1)

            record = await uow.ledger.append(
                AssignmentRecord(
                    id=None,
                    ref=ref,
                    action=LedgerAction.REASSIGNED,
                    performed_by=actor.id,
                    performed_at=now,
                    from_agent=from_agent,
                    to_agent=agent.id,
                    reason=reason or "Manual reassignment",
                    details={"previous_status": previous_status.value, "warnings": warnings},
                )
            )
            await uow.commit()

        logger.info("%s reassigned %s -> %s by %s", ref, from_agent, agent.id, actor.id)
        return AssignmentResult(
            ref=ref,
            agent_id=agent.id,
            action=LedgerAction.REASSIGNED,
            from_agent=from_agent,
            warnings=warnings,
            record_id=record.id,
        )

    async def _try_start(self, ref: WorkItemRef, actor: Actor) -> dict:
        now = self._clock()
        async with self._uow_factory() as uow:
            item = await self._get_item(uow, ref)
            if item.status != ItemStatus.ASSIGNED:
                raise AssignmentConflictError(
                    f"{ref} is {item.status.value}; only assigned items can be started",
                    rule="NOT_ASSIGNED",
                )
            await self._ensure_owner_or_above(uow, item, actor)

            expected = item.version
            item.status = ItemStatus.IN_PROGRESS
            item.started_at = now
            await save_item(uow, item, expected)
            await uow.agents.touch_activity(item.assigned_to, now)
            await uow.ledger.append(
                AssignmentRecord(
                    id=None,
                    ref=ref,
                    action=LedgerAction.STATUS_CHANGED,
                    performed_by=actor.id,
                    performed_at=now,
                    to_agent=item.assigned_to,
                    details={"from": ItemStatus.ASSIGNED.value, "to": ItemStatus.IN_PROGRESS.value},
                )
            )
            await uow.commit()

        logger.info("%s started by %s", ref, item.assigned_to)
        return {"type": ref.kind.value, "item_id": ref.item_id, "status": item.status.value,
                "agent_id": item.assigned_to, "started_at": now.isoformat()}

    async def _try_complete(self, ref: WorkItemRef, actor: Actor, reason: str | None) -> dict:
        now = self._clock()
        async with self._uow_factory() as uow:
            item = await self._get_item(uow, ref)
            if not item.is_active():
                raise AssignmentConflictError(
                    f"{ref} is {item.status.value}; only assigned items can be completed",
                    rule="NOT_ASSIGNED",
                )
            await self._ensure_owner_or_above(uow, item, actor)

            expected = item.version
            previous_status = item.status
            item.status = ItemStatus.COMPLETED
            item.completed_at = now
            await save_item(uow, item, expected)
            await release_workload(uow, item.assigned_to, ref)
            await uow.agents.touch_activity(item.assigned_to, now)

            details: dict = {"previous_status": previous_status.value}
            if item.assigned_at is not None:
                details["resolution_seconds"] = round((now - item.assigned_at).total_seconds(), 1)
            await uow.ledger.append(
                AssignmentRecord(
                    id=None,
                    ref=ref,
                    action=LedgerAction.COMPLETED,
                    performed_by=actor.id,
                    performed_at=now,
                    to_agent=item.assigned_to,
                    reason=reason,
                    details=details,
                )
            )
            await uow.commit()

        logger.info("%s completed (agent=%s)", ref, item.assigned_to)
        return {"type": ref.kind.value, "item_id": ref.item_id, "status": item.status.value,
                "agent_id": item.assigned_to, "completed_at": now.isoformat(),
                "resolution_seconds": details.get("resolution_seconds")}

    # ── Internals ──

    async def _load_or_register(
        self, uow: UnitOfWork, ref: WorkItemRef, priority: Priority | None, now: datetime
    ) -> WorkItem:
        item = await uow.work_items.get(ref)
        if item is not None:
            return item
        info = await self._gateway.get_work_item(ref)
        if info is None:
            raise NotFoundError(f"Work item {ref} not found")
        return await register_item(uow, ref, info, now, priority)

    async def _get_item(self, uow: UnitOfWork, ref: WorkItemRef) -> WorkItem:
        item = await uow.work_items.get(ref)
        if item is None:
            raise NotFoundError(f"Work item {ref} not found")
        return item

    async def _get_agent(self, uow: UnitOfWork, agent_id: str) -> Agent:
        agent = await uow.agents.get_by_id(agent_id)
        if agent is None:
            raise NotFoundError(f"Agent {agent_id} not found")
        return agent

    @staticmethod
    def _ensure_assignable(item: WorkItem) -> None:
        if not item.is_assignable():
            owner = f" to {item.assigned_to}" if item.assigned_to else ""
            raise AssignmentConflictError(
                f"{item.ref} is already {item.status.value}{owner}", rule="ALREADY_ASSIGNED"
            )

    @staticmethod
    def _ensure_manually_eligible(agent: Agent, item: WorkItem) -> None:
        why = manual_ineligibility_reason(agent, item)
        if why:
            raise IneligibleAgentError(f"Agent {agent.id} cannot take {item.ref}: {why}", rule=why)

    @staticmethod
    def _capacity_warnings(agent: Agent, ref: WorkItemRef) -> list[str]:
        if agent.is_available():
            return []
        logger.warning(
            "%s pushes agent %s over capacity (%d/%d)",
            ref, agent.id, agent.current_workload + 1, agent.capacity,
        )
        return [OVER_CAPACITY]

    async def _ensure_owner_or_above(self, uow: UnitOfWork, item: WorkItem, actor: Actor) -> None:
        if actor.id == item.assigned_to:
            return
        assignee = await uow.agents.get_by_id(item.assigned_to) if item.assigned_to else None
        floor = assignee.role_tier if assignee else RoleTier.AGENT
        if actor.tier.rank <= floor.rank:
            raise ForbiddenActionError(
                f"{actor.id} is neither the assignee of {item.ref} nor above them",
                rule="OWNER_OR_ABOVE",
            )

    async def _take_ownership(
        self, uow: UnitOfWork, item: WorkItem, agent_id: str, now: datetime
    ) -> float | None:
        """Write the assignment and drop the backlog entry. Returns the queue wait, if any."""
        expected = item.version
        item.status = ItemStatus.ASSIGNED
        item.assigned_to = agent_id
        item.assigned_at = now
        item.started_at = None
        item.completed_at = None
        await save_item(uow, item, expected)

        entry = await uow.queue.get(item.ref)
        if entry is None:
            return None
        await uow.queue.delete(item.ref)
        return round(entry.age_seconds(now), 1)

    async def _scoring_context(
        self,
        uow: UnitOfWork,
        strategy: StrategyName,
        item: WorkItem,
        candidates: list[Agent],
    ) -> ScoringContext:
        if strategy == StrategyName.ROUND_ROBIN:
            eligible = [a for a in candidates if is_eligible(a, item)]
            counts = await uow.round_robin.get_counts(rotation_key(item.department))
            return ScoringContext(rotation_counts=effective_counts(eligible, counts))
        if strategy == StrategyName.ADVANCED:
            since = self._clock() - self._performance_window
            performance = await load_performance(uow.ledger, since)
            return ScoringContext(performance=performance, weights=self._policy.weights)
        return ScoringContext()

    async def _advance_rotation(
        self, uow: UnitOfWork, item: WorkItem, eligible: list[Agent], agent_id: str
    ) -> None:
        key = rotation_key(item.department)
        counts = await uow.round_robin.get_counts(key)
        if rotation_complete(eligible, counts):
            await uow.round_robin.reset(key)
        await uow.round_robin.record(key, agent_id)
