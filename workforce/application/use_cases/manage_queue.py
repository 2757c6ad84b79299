"""QueueManager — backlog of work items with no eligible agent.

Entries are processed by priority (highest first), then by age (oldest
first), so no priority band starves. An entry leaves the queue only by being
assigned or by an operator resolving it; entries past ``max_attempts`` are
flagged ``stuck`` but never dropped.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable
from datetime import datetime, timedelta

from workforce.application.ports.audit_ledger import LedgerQuery
from workforce.application.ports.domain_gateway import DomainGateway
from workforce.application.ports.unit_of_work import UnitOfWorkFactory
from workforce.application.use_cases.assign_work_item import (
    AssignmentEngine,
    AssignmentResult,
    register_item,
    retry_on_stale,
    save_item,
    stage_enqueue,
)
from workforce.domain.clock import utcnow
from workforce.domain.entities.assignment_record import AssignmentRecord
from workforce.domain.entities.queue_entry import QueueEntry
from workforce.domain.errors import AssignmentConflictError, ForbiddenActionError, NotFoundError
from workforce.domain.value_objects.actor import SYSTEM_ACTOR, Actor
from workforce.domain.value_objects.enums import (
    ItemStatus,
    LedgerAction,
    Priority,
    QueueHealth,
    RoleTier,
)
from workforce.domain.value_objects.work_item_ref import WorkItemRef

logger = logging.getLogger(__name__)

TIME_RANGES = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}


def _entry_to_dict(entry: QueueEntry, now: datetime) -> dict:
    return {
        "type": entry.ref.kind.value,
        "item_id": entry.ref.item_id,
        "priority": entry.priority.value,
        "department": entry.department,
        "enqueued_at": entry.enqueued_at.isoformat(),
        "age_seconds": round(entry.age_seconds(now), 1),
        "attempts": entry.attempts,
        "last_attempt_at": entry.last_attempt_at.isoformat() if entry.last_attempt_at else None,
        "last_failure_reason": entry.last_failure_reason,
        "stuck": entry.stuck,
    }


class QueueManager:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        gateway: DomainGateway,
        engine: AssignmentEngine,
        sla_seconds: int = 3600,
        critical_backlog: int = 50,
        max_attempts: int = 10,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._uow_factory = uow_factory
        self._gateway = gateway
        self._engine = engine
        self._sla_seconds = sla_seconds
        self._critical_backlog = critical_backlog
        self._max_attempts = max_attempts
        self._clock = clock

    async def enqueue(
        self,
        ref: WorkItemRef,
        priority: Priority | None = None,
        reason: str = "Queued for later assignment",
        actor: Actor = SYSTEM_ACTOR,
    ) -> dict:
        """Idempotent: a second call bumps ``attempts`` on the existing entry."""
        return await retry_on_stale("enqueue", ref, lambda: self._try_enqueue(ref, priority, reason, actor))

    async def _try_enqueue(
        self, ref: WorkItemRef, priority: Priority | None, reason: str, actor: Actor
    ) -> dict:
        now = self._clock()
        async with self._uow_factory() as uow:
            item = await uow.work_items.get(ref)
            if item is None:
                info = await self._gateway.get_work_item(ref)
                if info is None:
                    raise NotFoundError(f"Work item {ref} not found")
                item = await register_item(uow, ref, info, now, priority)
            if not item.is_assignable():
                raise AssignmentConflictError(
                    f"{ref} is already {item.status.value}", rule="ALREADY_ASSIGNED"
                )
            if priority is not None and item.priority != priority:
                expected = item.version
                item.priority = priority
                await save_item(uow, item, expected)
            entry = await stage_enqueue(uow, item, reason, now, self._max_attempts, actor)
            await uow.commit()
        return _entry_to_dict(entry, now)

    async def process_queue(self, limit: int | None = None) -> dict:
        """One sweep over the backlog. Per-entry failures never abort the sweep."""
        async with self._uow_factory() as uow:
            entries = await uow.queue.list_ordered(limit)

        summary = {"processed": 0, "assigned": 0, "still_queued": 0, "failed": 0, "errors": []}
        for entry in entries:
            summary["processed"] += 1
            try:
                result = await self._engine.assign_to_best_agent(entry.ref, entry.priority)
            except Exception as exc:
                logger.exception("Queue processing failed for %s", entry.ref)
                summary["failed"] += 1
                summary["errors"].append({"item": str(entry.ref), "error": str(exc)})
                await self._record_failure(entry.ref, str(exc))
                continue

            if isinstance(result, AssignmentResult):
                summary["assigned"] += 1
            else:
                summary["still_queued"] += 1

        if entries:
            logger.info(
                "Queue sweep: processed=%d assigned=%d still_queued=%d failed=%d",
                summary["processed"], summary["assigned"],
                summary["still_queued"], summary["failed"],
            )
        return summary

    async def get_queue_status(self) -> dict:
        now = self._clock()
        async with self._uow_factory() as uow:
            entries = await uow.queue.list_ordered()

        by_priority = Counter(e.priority.value for e in entries)
        attempts = Counter(e.attempts for e in entries)
        oldest = max((e.age_seconds(now) for e in entries), default=0.0)
        return {
            "backlog": len(entries),
            "oldest_age_seconds": round(oldest, 1),
            "stuck": sum(1 for e in entries if e.stuck),
            "by_priority": {p.value: by_priority.get(p.value, 0) for p in Priority},
            "attempts_distribution": {str(k): v for k, v in sorted(attempts.items())},
            "entries": [_entry_to_dict(e, now) for e in entries],
        }

    async def get_queue_health_status(self) -> dict:
        """HEALTHY, DEGRADED (an entry older than the SLA) or CRITICAL (backlog too large).

        The 0..100 score loses points for backlog size, entries past the SLA
        and stuck entries.
        """
        now = self._clock()
        async with self._uow_factory() as uow:
            entries = await uow.queue.list_ordered()

        backlog = len(entries)
        overdue = [e for e in entries if e.age_seconds(now) > self._sla_seconds]
        stuck = [e for e in entries if e.stuck]
        urgent = [e for e in entries if e.priority == Priority.URGENT]

        if backlog > self._critical_backlog:
            status = QueueHealth.CRITICAL
        elif overdue:
            status = QueueHealth.DEGRADED
        else:
            status = QueueHealth.HEALTHY

        score = 100.0
        if self._critical_backlog > 0:
            score -= min(backlog / self._critical_backlog, 1.0) * 40
        score -= min(len(overdue) * 5, 30)
        score -= min(len(stuck) * 10, 30)

        issues = []
        if backlog > self._critical_backlog:
            issues.append(f"Backlog of {backlog} exceeds {self._critical_backlog}")
        if overdue:
            issues.append(f"{len(overdue)} entries waiting longer than {self._sla_seconds}s")
        if stuck:
            issues.append(f"{len(stuck)} entries stuck after {self._max_attempts} attempts")

        return {
            "status": status.value,
            "score": max(round(score), 0),
            "backlog": backlog,
            "overdue": len(overdue),
            "stuck": len(stuck),
            "urgent": len(urgent),
            "oldest_age_seconds": round(max((e.age_seconds(now) for e in entries), default=0.0), 1),
            "sla_seconds": self._sla_seconds,
            "critical_backlog": self._critical_backlog,
            "issues": issues,
            "checked_at": now.isoformat(),
        }

    async def get_queue_analytics(self, time_range: str = "24h") -> dict:
        """Throughput of the queue over a window, aggregated from the ledger."""
        window = TIME_RANGES.get(time_range)
        if window is None:
            raise ValueError(f"time_range must be one of {', '.join(TIME_RANGES)}")
        now = self._clock()
        since = now - window

        async with self._uow_factory() as uow:
            records, _ = await uow.ledger.search(
                LedgerQuery(
                    actions=frozenset({LedgerAction.QUEUED, LedgerAction.ASSIGNED, LedgerAction.DEQUEUED}),
                    since=since,
                    limit=None,
                    newest_first=False,
                )
            )
            backlog = len(await uow.queue.list_ordered())

        queued = [r for r in records if r.action == LedgerAction.QUEUED]
        from_queue = [
            r for r in records
            if r.action == LedgerAction.ASSIGNED and r.details.get("from_queue")
        ]
        resolved = [r for r in records if r.action == LedgerAction.DEQUEUED]
        waits = [float(r.details["queue_wait_seconds"]) for r in from_queue
                 if r.details.get("queue_wait_seconds") is not None]

        trend: dict[str, dict[str, int]] = {}
        for r in queued + from_queue:
            day = trend.setdefault(r.performed_at.date().isoformat(), {"queued": 0, "assigned": 0})
            day["queued" if r.action == LedgerAction.QUEUED else "assigned"] += 1

        priorities = Counter(r.details.get("priority", Priority.NORMAL.value) for r in queued)
        return {
            "time_range": time_range,
            "since": since.isoformat(),
            "total_queued": len(queued),
            "total_assigned_from_queue": len(from_queue),
            "total_resolved_manually": len(resolved),
            "current_backlog": backlog,
            "average_wait_seconds": round(sum(waits) / len(waits), 1) if waits else None,
            "max_wait_seconds": round(max(waits), 1) if waits else None,
            "priority_breakdown": {p.value: priorities.get(p.value, 0) for p in Priority},
            "daily_trend": [{"date": d, **counts} for d, counts in sorted(trend.items())],
        }

    async def resolve_entry(self, ref: WorkItemRef, actor: Actor, reason: str | None = None) -> dict:
        """Operator removes an entry; the item goes back to UNASSIGNED."""
        if not actor.tier.dominates(RoleTier.SENIOR_AGENT):
            raise ForbiddenActionError("Senior Agent or Head required", rule="SUPERVISOR_ONLY")
        return await retry_on_stale("resolve", ref, lambda: self._try_resolve(ref, actor, reason))

    async def _try_resolve(self, ref: WorkItemRef, actor: Actor, reason: str | None) -> dict:
        now = self._clock()
        async with self._uow_factory() as uow:
            entry = await uow.queue.get(ref)
            if entry is None:
                raise NotFoundError(f"Queue entry for {ref} not found")
            item = await uow.work_items.get(ref)
            if item is not None and item.status == ItemStatus.QUEUED:
                expected = item.version
                item.status = ItemStatus.UNASSIGNED
                await save_item(uow, item, expected)
            await uow.queue.delete(ref)
            await uow.ledger.append(
                AssignmentRecord(
                    id=None,
                    ref=ref,
                    action=LedgerAction.DEQUEUED,
                    performed_by=actor.id,
                    performed_at=now,
                    reason=reason or "Resolved by operator",
                    details={"attempts": entry.attempts, "stuck": entry.stuck},
                )
            )
            await uow.commit()

        logger.info("Queue entry %s resolved by %s", ref, actor.id)
        return {"type": ref.kind.value, "item_id": ref.item_id, "resolved": True,
                "attempts": entry.attempts}

    async def _record_failure(self, ref: WorkItemRef, reason: str) -> None:
        now = self._clock()
        async with self._uow_factory() as uow:
            entry = await uow.queue.get(ref)
            if entry is None:
                return
            entry.record_attempt(reason, now, self._max_attempts)
            await uow.queue.upsert(entry)
            await uow.commit()
