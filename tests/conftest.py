"""Pytest configuration and shared fixtures.

The engine talks to storage only through the UnitOfWork port, so the tests
run against an in-memory store with the same transactional behaviour as the
SQL adapter: nothing is visible to other units of work until ``commit()``,
leaving the block without commit discards everything, and
``save_if_version`` refuses a write when another unit of work committed the
item in between.
"""

from __future__ import annotations

import asyncio
import copy
import dataclasses
from datetime import datetime, timedelta, timezone

import pytest

from workforce.application.assignment_policy import AssignmentPolicy
from workforce.application.ports.agent_repo import AgentRepository
from workforce.application.ports.audit_ledger import AuditLedger, LedgerQuery
from workforce.application.ports.domain_gateway import DomainGateway, DomainItemInfo
from workforce.application.ports.queue_repo import QueueRepository
from workforce.application.ports.round_robin_repo import RoundRobinRepository
from workforce.application.ports.unit_of_work import UnitOfWork
from workforce.application.ports.work_item_repo import WorkItemRepository
from workforce.application.use_cases.agent_directory import AgentDirectory
from workforce.application.use_cases.assign_work_item import AssignmentEngine
from workforce.application.use_cases.assignment_history import AssignmentHistory
from workforce.application.use_cases.escalate_work_item import EscalationStateMachine
from workforce.application.use_cases.manage_queue import QueueManager
from workforce.application.use_cases.reassign_work import ReassignmentManager
from workforce.domain.entities.agent import Agent
from workforce.domain.entities.assignment_record import AssignmentRecord
from workforce.domain.entities.work_item import ACTIVE_STATUSES, WorkItem
from workforce.domain.errors import DomainGatewayError, NotFoundError
from workforce.domain.value_objects.enums import (
    EscalationStatus,
    ItemStatus,
    LedgerAction,
    OWNERSHIP_ACTIONS,
    Priority,
    RoleTier,
    StrategyName,
    WorkItemKind,
)
from workforce.domain.value_objects.work_item_ref import WorkItemRef

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


# ─── Clock ──────────────────────────────────────────────────────────


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


# ─── In-memory store ────────────────────────────────────────────────


@dataclasses.dataclass
class _Tables:
    agents: dict[str, Agent] = dataclasses.field(default_factory=dict)
    items: dict[WorkItemRef, WorkItem] = dataclasses.field(default_factory=dict)
    queue: dict = dataclasses.field(default_factory=dict)
    rr: dict[str, dict[str, int]] = dataclasses.field(default_factory=dict)


class InMemoryStore:
    """Committed state shared by every FakeUnitOfWork."""

    def __init__(self):
        self.tables = _Tables()
        self.records: list[AssignmentRecord] = []
        self.next_record_id = 1
        self.inject_conflicts = 0
        self.commits = 0
        # Slots reserved by open units of work, like a row lock held until commit.
        self.held_slots: dict[str, int] = {}


class FakeAgentRepo(AgentRepository):
    def __init__(self, tables: _Tables, store: InMemoryStore):
        self._t = tables
        self._store = store
        self.reserved: list[str] = []

    async def save(self, agent):
        self._t.agents[agent.id] = copy.deepcopy(agent)
        return agent

    async def get_by_id(self, agent_id):
        return copy.deepcopy(self._t.agents.get(agent_id))

    async def list_by_department(self, department):
        # Yield so concurrent units of work interleave like real I/O.
        await asyncio.sleep(0)
        return [
            copy.deepcopy(a) for a in sorted(self._t.agents.values(), key=lambda a: a.id)
            if a.department == department
        ]

    async def get_all(self):
        return [copy.deepcopy(a) for a in sorted(self._t.agents.values(), key=lambda a: a.id)]

    async def adjust_workload(self, agent_id, delta):
        agent = self._t.agents.get(agent_id)
        if agent is None:
            raise NotFoundError(f"Agent {agent_id} not found")
        target = agent.current_workload + delta
        agent.current_workload = max(target, 0)
        return target

    async def reserve_slot(self, agent_id):
        agent = self._t.agents.get(agent_id)
        committed = self._store.tables.agents.get(agent_id)
        if agent is None or committed is None:
            return False
        held = self._store.held_slots.get(agent_id, 0)
        if committed.current_workload + held >= committed.capacity:
            return False
        self._store.held_slots[agent_id] = held + 1
        self.reserved.append(agent_id)
        agent.current_workload += 1
        return True

    def release_holds(self):
        for agent_id in self.reserved:
            self._store.held_slots[agent_id] -= 1
        self.reserved = []

    async def set_workload(self, agent_id, workload):
        self._t.agents[agent_id].current_workload = workload

    async def touch_activity(self, agent_id, at):
        if agent_id in self._t.agents:
            self._t.agents[agent_id].last_activity = at


class FakeWorkItemRepo(WorkItemRepository):
    def __init__(self, tables: _Tables, snapshot: _Tables, store: InMemoryStore):
        self._t = tables
        self._snapshot = snapshot
        self._store = store

    async def add(self, item):
        existing = self._t.items.get(item.ref)
        if existing is not None:
            return copy.deepcopy(existing)
        item.version = 0
        self._t.items[item.ref] = copy.deepcopy(item)
        return item

    async def get(self, ref):
        return copy.deepcopy(self._t.items.get(ref))

    async def save_if_version(self, item, expected_version):
        if self._store.inject_conflicts > 0:
            self._store.inject_conflicts -= 1
            return False
        current = self._t.items.get(item.ref)
        if current is None or current.version != expected_version:
            return False
        committed = self._store.tables.items.get(item.ref)
        base = self._snapshot.items.get(item.ref)
        if committed is not None and (base is None or committed.version != base.version):
            return False
        item.version = expected_version + 1
        self._t.items[item.ref] = copy.deepcopy(item)
        return True

    async def list_by_agent(self, agent_id, statuses=None):
        return [
            copy.deepcopy(i) for i in sorted(self._t.items.values(), key=lambda i: str(i.ref))
            if i.assigned_to == agent_id and (statuses is None or i.status in statuses)
        ]

    async def count_active_by_agent(self):
        counts: dict[str, int] = {}
        for item in self._t.items.values():
            if item.assigned_to and item.status in ACTIVE_STATUSES:
                counts[item.assigned_to] = counts.get(item.assigned_to, 0) + 1
        return counts

    async def list_escalations(self, status, target=None):
        return [
            copy.deepcopy(i) for i in sorted(self._t.items.values(), key=lambda i: str(i.ref))
            if i.escalation_status == status and (target is None or i.escalated_to == target)
        ]

    async def list_stale_active(self, assigned_before):
        return [
            copy.deepcopy(i) for i in sorted(self._t.items.values(), key=lambda i: str(i.ref))
            if i.status in ACTIVE_STATUSES
            and i.escalation_status == EscalationStatus.NONE
            and i.assigned_at is not None
            and i.assigned_at < assigned_before
        ]


class FakeLedger(AuditLedger):
    def __init__(self, store: InMemoryStore):
        self._store = store
        self.pending: list[AssignmentRecord] = []

    async def append(self, record):
        saved = dataclasses.replace(record, id=self._store.next_record_id)
        self._store.next_record_id += 1
        self.pending.append(saved)
        return saved

    def _visible(self) -> list[AssignmentRecord]:
        return self._store.records + self.pending

    async def search(self, query: LedgerQuery):
        matches = []
        for r in self._visible():
            if query.ref is not None and r.ref != query.ref:
                continue
            if query.ref is None and query.kind is not None and r.ref.kind != query.kind:
                continue
            if query.agent_id and query.agent_id not in (r.to_agent, r.from_agent):
                continue
            if query.performed_by and r.performed_by != query.performed_by:
                continue
            if query.actions and r.action not in query.actions:
                continue
            if query.since is not None and r.performed_at < query.since:
                continue
            if query.until is not None and r.performed_at > query.until:
                continue
            matches.append(r)

        matches.sort(key=lambda r: (r.performed_at, r.id), reverse=query.newest_first)
        page = matches[query.offset:]
        if query.limit is not None:
            page = page[:query.limit]
        return page, len(matches)

    async def last_ownership_record(self, ref):
        owned = [r for r in self._visible() if r.ref == ref and r.action in OWNERSHIP_ACTIONS]
        return max(owned, key=lambda r: r.id) if owned else None


class FakeQueueRepo(QueueRepository):
    def __init__(self, tables: _Tables):
        self._t = tables

    async def get(self, ref):
        return copy.deepcopy(self._t.queue.get(ref))

    async def upsert(self, entry):
        self._t.queue[entry.ref] = copy.deepcopy(entry)
        return entry

    async def delete(self, ref):
        return self._t.queue.pop(ref, None) is not None

    async def list_ordered(self, limit=None):
        entries = sorted(self._t.queue.values(), key=lambda e: e.sort_key())
        if limit is not None:
            entries = entries[:limit]
        return [copy.deepcopy(e) for e in entries]


class FakeRoundRobinRepo(RoundRobinRepository):
    def __init__(self, tables: _Tables):
        self._t = tables

    async def get_counts(self, rr_key):
        return dict(self._t.rr.get(rr_key, {}))

    async def record(self, rr_key, agent_id):
        counts = self._t.rr.setdefault(rr_key, {})
        old = counts.get(agent_id, 0)
        counts[agent_id] = old + 1
        return old

    async def reset(self, rr_key):
        counts = self._t.rr.get(rr_key, {})
        for agent_id in counts:
            counts[agent_id] = 0


class FakeUnitOfWork(UnitOfWork):
    def __init__(self, store: InMemoryStore):
        self._store = store

    async def __aenter__(self):
        self._snapshot = copy.deepcopy(self._store.tables)
        self._working = copy.deepcopy(self._store.tables)
        self.agents = FakeAgentRepo(self._working, self._store)
        self.work_items = FakeWorkItemRepo(self._working, self._snapshot, self._store)
        self.ledger = FakeLedger(self._store)
        self.queue = FakeQueueRepo(self._working)
        self.round_robin = FakeRoundRobinRepo(self._working)
        return self

    async def commit(self):
        committed = self._store.tables

        # Workload counters move by delta, like "current_workload + :delta" in SQL.
        for agent_id, agent in self._working.agents.items():
            before = self._snapshot.agents.get(agent_id)
            target = committed.agents.get(agent_id)
            if before is None or target is None:
                committed.agents[agent_id] = copy.deepcopy(agent)
                continue
            delta = agent.current_workload - before.current_workload
            if agent == before:
                continue
            updated = copy.deepcopy(agent)
            updated.current_workload = max(target.current_workload + delta, 0)
            committed.agents[agent_id] = updated

        for ref, item in self._working.items.items():
            before = self._snapshot.items.get(ref)
            if before is None or before != item:
                committed.items[ref] = copy.deepcopy(item)

        for ref in set(self._snapshot.queue) - set(self._working.queue):
            committed.queue.pop(ref, None)
        for ref, entry in self._working.queue.items():
            if self._snapshot.queue.get(ref) != entry:
                committed.queue[ref] = copy.deepcopy(entry)

        for key, counts in self._working.rr.items():
            if self._snapshot.rr.get(key) != counts:
                committed.rr[key] = dict(counts)

        self._store.records.extend(self.ledger.pending)
        self.ledger.pending = []
        self.agents.release_holds()
        self._snapshot = copy.deepcopy(self._working)
        self._store.commits += 1

    async def rollback(self):
        self.ledger.pending = []
        self.agents.release_holds()
        self._working = copy.deepcopy(self._snapshot)


class FakeGateway(DomainGateway):
    def __init__(self):
        self.items: dict[WorkItemRef, DomainItemInfo] = {}
        self.decisions: list[tuple[WorkItemRef, str, str]] = []
        self.fail_decisions = False
        self.lookups = 0

    async def get_work_item(self, ref):
        self.lookups += 1
        return self.items.get(ref)

    async def apply_escalation_decision(self, ref, action, feedback):
        if self.fail_decisions:
            raise DomainGatewayError(f"Owning domain refused the decision for {ref}")
        self.decisions.append((ref, action.value, feedback))


# ─── World: store + gateway + use cases ─────────────────────────────


class World:
    def __init__(self):
        self.store = InMemoryStore()
        self.gateway = FakeGateway()
        self.clock = FakeClock()
        self.policy = AssignmentPolicy()

    def uow_factory(self) -> FakeUnitOfWork:
        return FakeUnitOfWork(self.store)

    # Seeding writes committed state directly.

    def add_agent(
        self,
        agent_id: str,
        tier: RoleTier = RoleTier.AGENT,
        department: str = "OPERATIONS",
        capacity: int = 5,
        workload: int = 0,
        skills: set[str] | None = None,
        last_activity: datetime | None = None,
    ) -> Agent:
        agent = Agent(
            id=agent_id,
            name=agent_id.upper(),
            role_tier=tier,
            department=department,
            capacity=capacity,
            current_workload=workload,
            last_activity=last_activity,
            skills=set(skills or ()),
        )
        self.store.tables.agents[agent_id] = copy.deepcopy(agent)
        return agent

    def add_domain_item(
        self,
        item_id: str,
        kind: WorkItemKind = WorkItemKind.ORGANIZER,
        department: str = "OPERATIONS",
        priority: Priority = Priority.NORMAL,
        domain_status: str | None = "PENDING",
        categories: frozenset[str] = frozenset(),
    ) -> WorkItemRef:
        ref = WorkItemRef(kind, item_id)
        self.gateway.items[ref] = DomainItemInfo(
            department=department,
            priority=priority,
            domain_status=domain_status,
            categories=categories,
        )
        return ref

    def add_assigned_item(
        self,
        item_id: str,
        agent_id: str,
        priority: Priority = Priority.NORMAL,
        status: ItemStatus = ItemStatus.ASSIGNED,
        assigned_at: datetime | None = None,
        started_at: datetime | None = None,
        department: str = "OPERATIONS",
        kind: WorkItemKind = WorkItemKind.ORGANIZER,
    ) -> WorkItemRef:
        """An already-assigned item; the agent's counter is bumped to match."""
        ref = self.add_domain_item(item_id, kind=kind, department=department, priority=priority)
        self.store.tables.items[ref] = WorkItem(
            ref=ref,
            department=department,
            priority=priority,
            status=status,
            assigned_to=agent_id,
            assigned_at=assigned_at or self.clock(),
            started_at=started_at,
            created_at=self.clock(),
        )
        self.store.tables.agents[agent_id].current_workload += 1
        return ref

    # Reads of committed state.

    def agent(self, agent_id: str) -> Agent:
        return self.store.tables.agents[agent_id]

    def item(self, ref: WorkItemRef) -> WorkItem:
        return self.store.tables.items[ref]

    def records(self, action: LedgerAction | None = None) -> list[AssignmentRecord]:
        return [r for r in self.store.records if action is None or r.action == action]

    def total_workload(self) -> int:
        return sum(a.current_workload for a in self.store.tables.agents.values())

    def active_items(self) -> int:
        return sum(1 for i in self.store.tables.items.values() if i.status in ACTIVE_STATUSES)

    # Use cases wired to the fakes.

    def engine(self, strategy: StrategyName | None = None, **kwargs) -> AssignmentEngine:
        if strategy is not None:
            self.policy = AssignmentPolicy(strategy=strategy)
        return AssignmentEngine(
            uow_factory=self.uow_factory,
            gateway=self.gateway,
            policy=self.policy,
            clock=self.clock,
            **kwargs,
        )

    def queue_manager(self, engine: AssignmentEngine | None = None, **kwargs) -> QueueManager:
        return QueueManager(
            uow_factory=self.uow_factory,
            gateway=self.gateway,
            engine=engine or self.engine(),
            clock=self.clock,
            **kwargs,
        )

    def reassignment(self, engine: AssignmentEngine | None = None, **kwargs) -> ReassignmentManager:
        return ReassignmentManager(
            uow_factory=self.uow_factory,
            engine=engine or self.engine(),
            clock=self.clock,
            **kwargs,
        )

    def escalations(self, engine: AssignmentEngine | None = None, **kwargs) -> EscalationStateMachine:
        return EscalationStateMachine(
            uow_factory=self.uow_factory,
            gateway=self.gateway,
            engine=engine or self.engine(),
            clock=self.clock,
            **kwargs,
        )

    def history(self) -> AssignmentHistory:
        return AssignmentHistory(self.uow_factory, clock=self.clock)

    def directory(self) -> AgentDirectory:
        return AgentDirectory(self.uow_factory, clock=self.clock)


@pytest.fixture
def world() -> World:
    return World()
