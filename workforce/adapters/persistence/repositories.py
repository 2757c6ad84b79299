"""SQLAlchemy repository implementations."""

from __future__ import annotations

import dataclasses
from datetime import datetime

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from workforce.adapters.persistence.models import (
    AgentModel,
    AssignmentRecordModel,
    QueueEntryModel,
    RoundRobinStateModel,
    WorkItemModel,
)
from workforce.application.ports.agent_repo import AgentRepository
from workforce.application.ports.audit_ledger import AuditLedger, LedgerQuery
from workforce.application.ports.queue_repo import QueueRepository
from workforce.application.ports.round_robin_repo import RoundRobinRepository
from workforce.application.ports.work_item_repo import WorkItemRepository
from workforce.domain.entities.agent import Agent
from workforce.domain.entities.assignment_record import AssignmentRecord
from workforce.domain.entities.queue_entry import QueueEntry
from workforce.domain.entities.work_item import ACTIVE_STATUSES, WorkItem
from workforce.domain.errors import NotFoundError
from workforce.domain.value_objects.enums import (
    OWNERSHIP_ACTIONS,
    EscalationAction,
    EscalationStatus,
    ItemStatus,
    LedgerAction,
    Priority,
    RoleTier,
    StrategyName,
    WorkItemKind,
)
from workforce.domain.value_objects.work_item_ref import WorkItemRef

# ─── Mappers ─────────────────────────────────────────────────────────


def _agent_to_domain(m: AgentModel) -> Agent:
    return Agent(
        id=m.id,
        name=m.name,
        role_tier=RoleTier(m.role_tier),
        department=m.department,
        capacity=m.capacity,
        current_workload=m.current_workload,
        last_activity=m.last_activity,
        skills=set(m.skills) if m.skills else set(),
    )


def _item_to_domain(m: WorkItemModel) -> WorkItem:
    return WorkItem(
        ref=WorkItemRef(WorkItemKind(m.kind), m.item_id),
        department=m.department,
        priority=Priority(m.priority),
        categories=frozenset(m.categories or ()),
        status=ItemStatus(m.status),
        assigned_to=m.assigned_to,
        assigned_at=m.assigned_at,
        started_at=m.started_at,
        completed_at=m.completed_at,
        escalation_status=EscalationStatus(m.escalation_status),
        escalated_by=m.escalated_by,
        escalated_to=RoleTier(m.escalated_to) if m.escalated_to else None,
        escalation_reason=m.escalation_reason,
        escalation_feedback=m.escalation_feedback,
        escalation_action=EscalationAction(m.escalation_action) if m.escalation_action else None,
        escalated_at=m.escalated_at,
        reviewed_by=m.reviewed_by,
        reviewed_at=m.reviewed_at,
        version=m.version,
        created_at=m.created_at,
    )


def _item_values(item: WorkItem) -> dict:
    """Mutable columns of a work item; the key and version are handled by the caller."""
    return {
        "department": item.department,
        "priority": item.priority.value,
        "categories": sorted(item.categories),
        "status": item.status.value,
        "assigned_to": item.assigned_to,
        "assigned_at": item.assigned_at,
        "started_at": item.started_at,
        "completed_at": item.completed_at,
        "escalation_status": item.escalation_status.value,
        "escalated_by": item.escalated_by,
        "escalated_to": item.escalated_to.value if item.escalated_to else None,
        "escalation_reason": item.escalation_reason,
        "escalation_feedback": item.escalation_feedback,
        "escalation_action": item.escalation_action.value if item.escalation_action else None,
        "escalated_at": item.escalated_at,
        "reviewed_by": item.reviewed_by,
        "reviewed_at": item.reviewed_at,
    }


def _record_to_domain(m: AssignmentRecordModel) -> AssignmentRecord:
    return AssignmentRecord(
        id=m.id,
        ref=WorkItemRef(WorkItemKind(m.kind), m.item_id),
        action=LedgerAction(m.action),
        performed_by=m.performed_by,
        performed_at=m.performed_at,
        from_agent=m.from_agent,
        to_agent=m.to_agent,
        strategy=StrategyName(m.strategy) if m.strategy else None,
        reason=m.reason,
        details=dict(m.details or {}),
    )


def _entry_to_domain(m: QueueEntryModel) -> QueueEntry:
    return QueueEntry(
        ref=WorkItemRef(WorkItemKind(m.kind), m.item_id),
        priority=Priority(m.priority),
        department=m.department,
        enqueued_at=m.enqueued_at,
        attempts=m.attempts,
        last_attempt_at=m.last_attempt_at,
        last_failure_reason=m.last_failure_reason,
        stuck=m.stuck,
    )


def _item_key(ref: WorkItemRef):
    return and_(WorkItemModel.kind == ref.kind.value, WorkItemModel.item_id == ref.item_id)


# ─── Repositories ────────────────────────────────────────────────────


class SqlAgentRepository(AgentRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def save(self, agent: Agent) -> Agent:
        """Upsert roster fields; an existing agent keeps its workload counter."""
        stmt = insert(AgentModel).values(
            id=agent.id,
            name=agent.name,
            role_tier=agent.role_tier.value,
            department=agent.department,
            capacity=agent.capacity,
            current_workload=agent.current_workload,
            skills=sorted(agent.skills),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[AgentModel.id],
            set_={
                "name": stmt.excluded.name,
                "role_tier": stmt.excluded.role_tier,
                "department": stmt.excluded.department,
                "capacity": stmt.excluded.capacity,
                "skills": stmt.excluded.skills,
            },
        )
        await self._s.execute(stmt)
        await self._s.flush()
        return agent

    async def get_by_id(self, agent_id: str) -> Agent | None:
        result = await self._s.execute(
            select(AgentModel)
            .where(AgentModel.id == agent_id)
            .execution_options(populate_existing=True)
        )
        m = result.scalar_one_or_none()
        return _agent_to_domain(m) if m else None

    async def list_by_department(self, department: str) -> list[Agent]:
        result = await self._s.execute(
            select(AgentModel)
            .where(AgentModel.department == department)
            .order_by(AgentModel.id)
            .execution_options(populate_existing=True)
        )
        return [_agent_to_domain(m) for m in result.scalars()]

    async def get_all(self) -> list[Agent]:
        result = await self._s.execute(
            select(AgentModel).order_by(AgentModel.id).execution_options(populate_existing=True)
        )
        return [_agent_to_domain(m) for m in result.scalars()]

    async def adjust_workload(self, agent_id: str, delta: int) -> int:
        current = await self._s.scalar(
            select(AgentModel.current_workload)
            .where(AgentModel.id == agent_id)
            .with_for_update()
        )
        if current is None:
            raise NotFoundError(f"Agent {agent_id} not found")
        await self._s.execute(
            update(AgentModel)
            .where(AgentModel.id == agent_id)
            .values(current_workload=func.greatest(AgentModel.current_workload + delta, 0))
        )
        await self._s.flush()
        return current + delta

    async def reserve_slot(self, agent_id: str) -> bool:
        result = await self._s.execute(
            update(AgentModel)
            .where(
                AgentModel.id == agent_id,
                AgentModel.current_workload < AgentModel.capacity,
            )
            .values(current_workload=AgentModel.current_workload + 1)
        )
        await self._s.flush()
        return result.rowcount == 1

    async def set_workload(self, agent_id: str, workload: int) -> None:
        await self._s.execute(
            update(AgentModel)
            .where(AgentModel.id == agent_id)
            .values(current_workload=max(workload, 0))
        )
        await self._s.flush()

    async def touch_activity(self, agent_id: str, at: datetime) -> None:
        await self._s.execute(
            update(AgentModel).where(AgentModel.id == agent_id).values(last_activity=at)
        )
        await self._s.flush()


class SqlWorkItemRepository(WorkItemRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def add(self, item: WorkItem) -> WorkItem:
        # A concurrent registration of the same ref wins silently; return the stored row.
        await self._s.execute(
            insert(WorkItemModel)
            .values(
                kind=item.kind.value,
                item_id=item.item_id,
                version=0,
                created_at=item.created_at or func.now(),
                **_item_values(item),
            )
            .on_conflict_do_nothing(index_elements=[WorkItemModel.kind, WorkItemModel.item_id])
        )
        await self._s.flush()
        stored = await self.get(item.ref)
        return stored if stored is not None else item

    async def get(self, ref: WorkItemRef) -> WorkItem | None:
        result = await self._s.execute(
            select(WorkItemModel).where(_item_key(ref)).execution_options(populate_existing=True)
        )
        m = result.scalar_one_or_none()
        return _item_to_domain(m) if m else None

    async def save_if_version(self, item: WorkItem, expected_version: int) -> bool:
        result = await self._s.execute(
            update(WorkItemModel)
            .where(_item_key(item.ref), WorkItemModel.version == expected_version)
            .values(version=expected_version + 1, **_item_values(item))
        )
        if result.rowcount != 1:
            return False
        await self._s.flush()
        item.version = expected_version + 1
        return True

    async def list_by_agent(
        self, agent_id: str, statuses: frozenset[ItemStatus] | None = None
    ) -> list[WorkItem]:
        stmt = select(WorkItemModel).where(WorkItemModel.assigned_to == agent_id)
        if statuses:
            stmt = stmt.where(WorkItemModel.status.in_([s.value for s in statuses]))
        result = await self._s.execute(
            stmt.order_by(WorkItemModel.assigned_at, WorkItemModel.item_id)
            .execution_options(populate_existing=True)
        )
        return [_item_to_domain(m) for m in result.scalars()]

    async def count_active_by_agent(self) -> dict[str, int]:
        result = await self._s.execute(
            select(WorkItemModel.assigned_to, func.count())
            .where(
                WorkItemModel.status.in_([s.value for s in ACTIVE_STATUSES]),
                WorkItemModel.assigned_to.is_not(None),
            )
            .group_by(WorkItemModel.assigned_to)
        )
        return {agent_id: count for agent_id, count in result.all()}

    async def list_escalations(
        self, status: EscalationStatus, target: RoleTier | None = None
    ) -> list[WorkItem]:
        stmt = select(WorkItemModel).where(WorkItemModel.escalation_status == status.value)
        if target is not None:
            stmt = stmt.where(WorkItemModel.escalated_to == target.value)
        result = await self._s.execute(
            stmt.order_by(WorkItemModel.escalated_at, WorkItemModel.item_id)
        )
        return [_item_to_domain(m) for m in result.scalars()]

    async def list_stale_active(self, assigned_before: datetime) -> list[WorkItem]:
        result = await self._s.execute(
            select(WorkItemModel)
            .where(
                WorkItemModel.status.in_([s.value for s in ACTIVE_STATUSES]),
                WorkItemModel.escalation_status == EscalationStatus.NONE.value,
                WorkItemModel.assigned_at < assigned_before,
            )
            .order_by(WorkItemModel.assigned_at)
        )
        return [_item_to_domain(m) for m in result.scalars()]


class SqlAuditLedger(AuditLedger):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def append(self, record: AssignmentRecord) -> AssignmentRecord:
        m = AssignmentRecordModel(
            kind=record.ref.kind.value,
            item_id=record.ref.item_id,
            action=record.action.value,
            from_agent=record.from_agent,
            to_agent=record.to_agent,
            strategy=record.strategy.value if record.strategy else None,
            reason=record.reason,
            performed_by=record.performed_by,
            performed_at=record.performed_at,
            details=record.details,
        )
        self._s.add(m)
        await self._s.flush()
        return dataclasses.replace(record, id=m.id)

    async def search(self, query: LedgerQuery) -> tuple[list[AssignmentRecord], int]:
        conditions = []
        if query.ref is not None:
            conditions.append(AssignmentRecordModel.kind == query.ref.kind.value)
            conditions.append(AssignmentRecordModel.item_id == query.ref.item_id)
        elif query.kind is not None:
            conditions.append(AssignmentRecordModel.kind == query.kind.value)
        if query.agent_id:
            conditions.append(
                or_(
                    AssignmentRecordModel.to_agent == query.agent_id,
                    AssignmentRecordModel.from_agent == query.agent_id,
                )
            )
        if query.performed_by:
            conditions.append(AssignmentRecordModel.performed_by == query.performed_by)
        if query.actions:
            conditions.append(AssignmentRecordModel.action.in_([a.value for a in query.actions]))
        if query.since is not None:
            conditions.append(AssignmentRecordModel.performed_at >= query.since)
        if query.until is not None:
            conditions.append(AssignmentRecordModel.performed_at <= query.until)

        total = await self._s.scalar(
            select(func.count()).select_from(AssignmentRecordModel).where(*conditions)
        )

        if query.newest_first:
            order = (AssignmentRecordModel.performed_at.desc(), AssignmentRecordModel.id.desc())
        else:
            order = (AssignmentRecordModel.performed_at.asc(), AssignmentRecordModel.id.asc())
        stmt = select(AssignmentRecordModel).where(*conditions).order_by(*order)
        if query.offset:
            stmt = stmt.offset(query.offset)
        if query.limit is not None:
            stmt = stmt.limit(query.limit)

        result = await self._s.execute(stmt)
        return [_record_to_domain(m) for m in result.scalars()], int(total or 0)

    async def last_ownership_record(self, ref: WorkItemRef) -> AssignmentRecord | None:
        result = await self._s.execute(
            select(AssignmentRecordModel)
            .where(
                AssignmentRecordModel.kind == ref.kind.value,
                AssignmentRecordModel.item_id == ref.item_id,
                AssignmentRecordModel.action.in_([a.value for a in OWNERSHIP_ACTIONS]),
            )
            .order_by(AssignmentRecordModel.id.desc())
            .limit(1)
        )
        m = result.scalar_one_or_none()
        return _record_to_domain(m) if m else None


class SqlQueueRepository(QueueRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def get(self, ref: WorkItemRef) -> QueueEntry | None:
        result = await self._s.execute(
            select(QueueEntryModel)
            .where(QueueEntryModel.kind == ref.kind.value, QueueEntryModel.item_id == ref.item_id)
            .execution_options(populate_existing=True)
        )
        m = result.scalar_one_or_none()
        return _entry_to_domain(m) if m else None

    async def upsert(self, entry: QueueEntry) -> QueueEntry:
        values = {
            "priority": entry.priority.value,
            "priority_rank": entry.priority.rank,
            "department": entry.department,
            "attempts": entry.attempts,
            "last_attempt_at": entry.last_attempt_at,
            "last_failure_reason": entry.last_failure_reason,
            "stuck": entry.stuck,
        }
        stmt = insert(QueueEntryModel).values(
            kind=entry.ref.kind.value,
            item_id=entry.ref.item_id,
            enqueued_at=entry.enqueued_at,
            **values,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[QueueEntryModel.kind, QueueEntryModel.item_id],
            set_=values,
        )
        await self._s.execute(stmt)
        await self._s.flush()
        return entry

    async def delete(self, ref: WorkItemRef) -> bool:
        result = await self._s.execute(
            delete(QueueEntryModel).where(
                QueueEntryModel.kind == ref.kind.value, QueueEntryModel.item_id == ref.item_id
            )
        )
        await self._s.flush()
        return result.rowcount > 0

    async def list_ordered(self, limit: int | None = None) -> list[QueueEntry]:
        stmt = select(QueueEntryModel).order_by(
            QueueEntryModel.priority_rank.desc(),
            QueueEntryModel.enqueued_at.asc(),
            QueueEntryModel.kind,
            QueueEntryModel.item_id,
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._s.execute(stmt.execution_options(populate_existing=True))
        return [_entry_to_domain(m) for m in result.scalars()]


class SqlRoundRobinRepository(RoundRobinRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def get_counts(self, rr_key: str) -> dict[str, int]:
        result = await self._s.execute(
            select(RoundRobinStateModel.agent_id, RoundRobinStateModel.counter).where(
                RoundRobinStateModel.rr_key == rr_key
            )
        )
        return {agent_id: counter for agent_id, counter in result.all()}

    async def record(self, rr_key: str, agent_id: str) -> int:
        await self._s.execute(
            insert(RoundRobinStateModel)
            .values(rr_key=rr_key, agent_id=agent_id, counter=0)
            .on_conflict_do_nothing(constraint="uq_round_robin_key_agent")
        )
        result = await self._s.execute(
            select(RoundRobinStateModel)
            .where(
                RoundRobinStateModel.rr_key == rr_key,
                RoundRobinStateModel.agent_id == agent_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        m = result.scalar_one()
        old_value = m.counter
        m.counter += 1
        await self._s.flush()
        return old_value

    async def reset(self, rr_key: str) -> None:
        await self._s.execute(
            update(RoundRobinStateModel)
            .where(RoundRobinStateModel.rr_key == rr_key)
            .values(counter=0)
        )
        await self._s.flush()
