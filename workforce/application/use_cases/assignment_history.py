"""AssignmentHistory — read-only queries over the audit ledger.

Nothing here writes; every method opens a unit of work that is rolled back
on exit.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from collections.abc import Callable
from datetime import datetime, timedelta

from workforce.application.ports.audit_ledger import AuditLedger, LedgerQuery
from workforce.application.ports.unit_of_work import UnitOfWorkFactory
from workforce.domain.clock import utcnow
from workforce.domain.entities.assignment_record import AssignmentRecord
from workforce.domain.errors import NotFoundError
from workforce.domain.policies.performance import AgentPerformance, compute_performance
from workforce.domain.value_objects.enums import OWNERSHIP_ACTIONS, LedgerAction, WorkItemKind
from workforce.domain.value_objects.work_item_ref import WorkItemRef

PERFORMANCE_ACTIONS = frozenset({LedgerAction.COMPLETED, LedgerAction.ESCALATION_REVIEWED})
MAX_PAGE_SIZE = 200

logger = logging.getLogger(__name__)


async def load_performance(ledger: AuditLedger, since: datetime) -> dict[str, AgentPerformance]:
    """Per-agent quality and speed signals for the window starting at *since*."""
    records, _ = await ledger.search(
        LedgerQuery(actions=PERFORMANCE_ACTIONS, since=since, limit=None, newest_first=False)
    )
    return compute_performance(records)


def record_to_dict(record: AssignmentRecord) -> dict:
    return {
        "id": record.id,
        "type": record.ref.kind.value,
        "item_id": record.ref.item_id,
        "action": record.action.value,
        "from_agent": record.from_agent,
        "to_agent": record.to_agent,
        "strategy": record.strategy.value if record.strategy else None,
        "reason": record.reason,
        "performed_by": record.performed_by,
        "performed_at": record.performed_at.isoformat(),
        "details": record.details,
    }


class AssignmentHistory:
    def __init__(self, uow_factory: UnitOfWorkFactory, clock: Callable[[], datetime] = utcnow):
        self._uow_factory = uow_factory
        self._clock = clock

    async def _search(self, query: LedgerQuery) -> tuple[list[AssignmentRecord], int]:
        async with self._uow_factory() as uow:
            return await uow.ledger.search(query)

    async def item_history(self, ref: WorkItemRef) -> list[dict]:
        """Every ledger entry of one item, oldest first."""
        records, _ = await self._search(LedgerQuery(ref=ref, limit=None, newest_first=False))
        return [record_to_dict(r) for r in records]

    async def agent_history(self, agent_id: str, limit: int = 50, offset: int = 0) -> dict:
        records, total = await self._search(
            LedgerQuery(agent_id=agent_id, limit=_clamp(limit), offset=max(offset, 0))
        )
        return {"agent_id": agent_id, "total": total, "records": [record_to_dict(r) for r in records]}

    async def recent_assignments(self, limit: int = 20) -> list[dict]:
        records, _ = await self._search(LedgerQuery(actions=OWNERSHIP_ACTIONS, limit=_clamp(limit)))
        return [record_to_dict(r) for r in records]

    async def reassignment_history(
        self,
        agent_id: str | None = None,
        since: datetime | None = None,
        limit: int = 50,
    ) -> list[dict]:
        records, _ = await self._search(
            LedgerQuery(
                agent_id=agent_id,
                actions=frozenset({LedgerAction.REASSIGNED}),
                since=since,
                limit=_clamp(limit),
            )
        )
        return [record_to_dict(r) for r in records]

    async def audit_logs(
        self,
        kind: WorkItemKind | None = None,
        item_id: str | None = None,
        agent_id: str | None = None,
        performed_by: str | None = None,
        action: LedgerAction | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> dict:
        """Filtered, paginated ledger listing, newest first."""
        page = max(page, 1)
        page_size = _clamp(page_size)
        ref = WorkItemRef(kind, item_id) if kind and item_id else None
        records, total = await self._search(
            LedgerQuery(
                ref=ref,
                kind=kind if ref is None else None,
                agent_id=agent_id,
                performed_by=performed_by,
                actions=frozenset({action}) if action else None,
                since=start,
                until=end,
                limit=page_size,
                offset=(page - 1) * page_size,
            )
        )
        return {
            "logs": [record_to_dict(r) for r in records],
            "pagination": {
                "page": page,
                "page_size": page_size,
                "total": total,
                "pages": math.ceil(total / page_size) if total else 0,
            },
        }

    async def audit_stats(
        self,
        performed_by: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict:
        """Action counts, per-kind counts and daily activity for a date range.

        Defaults to the last 30 days.
        """
        end = end or self._clock()
        start = start or end - timedelta(days=30)
        records, total = await self._search(
            LedgerQuery(performed_by=performed_by, since=start, until=end, limit=None)
        )

        actions = Counter(r.action.value for r in records)
        kinds = Counter(r.ref.kind.value for r in records)
        daily = Counter(r.performed_at.date().isoformat() for r in records)
        actors = Counter(r.performed_by for r in records)

        return {
            "start": start.isoformat(),
            "end": end.isoformat(),
            "total": total,
            "action_counts": dict(sorted(actions.items())),
            "entity_type_counts": dict(sorted(kinds.items())),
            "daily_activity": [{"date": d, "count": n} for d, n in sorted(daily.items())],
            "top_actors": [{"performed_by": a, "count": n} for a, n in actors.most_common(10)],
        }

    async def agent_performance(self, agent_id: str, window_days: int = 7) -> dict:
        since = self._clock() - timedelta(days=window_days)
        async with self._uow_factory() as uow:
            if await uow.agents.get_by_id(agent_id) is None:
                raise NotFoundError(f"Agent {agent_id} not found")
            performance = await load_performance(uow.ledger, since)
            moves, _ = await uow.ledger.search(
                LedgerQuery(agent_id=agent_id, actions=OWNERSHIP_ACTIONS, since=since, limit=None)
            )
        return _performance_row(agent_id, performance, moves, window_days)

    async def agents_performance(self, window_days: int = 7, department: str | None = None) -> dict:
        """Performance of every agent that takes assignments, best first.

        Ordered by completions, then lowest return rate, then id.
        """
        since = self._clock() - timedelta(days=window_days)
        async with self._uow_factory() as uow:
            if department:
                agents = await uow.agents.list_by_department(department)
            else:
                agents = await uow.agents.get_all()
            performance = await load_performance(uow.ledger, since)
            moves, _ = await uow.ledger.search(
                LedgerQuery(actions=OWNERSHIP_ACTIONS, since=since, limit=None)
            )

        rows = []
        for agent in agents:
            if not agent.takes_assignments():
                continue
            row = _performance_row(agent.id, performance, moves, window_days)
            row.update({"name": agent.name, "department": agent.department,
                        "role_tier": agent.role_tier.value})
            rows.append(row)
        rows.sort(key=lambda r: (-r["completions"], r["return_rate"], r["agent_id"]))
        return {"window_days": window_days, "department": department, "agents": rows}

    async def ownership(self, ref: WorkItemRef) -> dict:
        """Current owner of *ref* next to the owner its ledger names.

        The last ASSIGNED/REASSIGNED record must point at the item's
        assignee; ``consistent`` is False when the two disagree.
        """
        async with self._uow_factory() as uow:
            item = await uow.work_items.get(ref)
            if item is None:
                raise NotFoundError(f"Work item {ref} not found")
            record = await uow.ledger.last_ownership_record(ref)

        ledger_owner = record.to_agent if record else None
        consistent = ledger_owner == item.assigned_to
        if not consistent:
            logger.warning(
                "%s is assigned to %s but its ledger names %s", ref, item.assigned_to, ledger_owner
            )
        return {
            "type": ref.kind.value,
            "item_id": ref.item_id,
            "status": item.status.value,
            "assigned_to": item.assigned_to,
            "ledger_owner": ledger_owner,
            "record_id": record.id if record else None,
            "consistent": consistent,
        }


def _performance_row(
    agent_id: str,
    performance: dict[str, AgentPerformance],
    moves: list[AssignmentRecord],
    window_days: int,
) -> dict:
    perf = performance.get(agent_id) or AgentPerformance(agent_id=agent_id)
    result = perf.to_dict()
    result.update(
        {
            "window_days": window_days,
            "assigned": sum(
                1 for r in moves if r.action == LedgerAction.ASSIGNED and r.to_agent == agent_id
            ),
            "reassigned_in": sum(
                1 for r in moves if r.action == LedgerAction.REASSIGNED and r.to_agent == agent_id
            ),
            "reassigned_out": sum(
                1 for r in moves if r.action == LedgerAction.REASSIGNED and r.from_agent == agent_id
            ),
        }
    )
    return result


def _clamp(limit: int) -> int:
    return min(max(limit, 1), MAX_PAGE_SIZE)
