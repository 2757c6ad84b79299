"""ReassignmentManager — manual moves plus the two bulk sweeps.

Both sweeps plan on a snapshot and then execute each planned move through
``AssignmentEngine.reassign``, one transaction per item. A failed move leaves
that item where it was and the sweep carries on; the next sweep re-plans
from fresh state.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from workforce.application.ports.unit_of_work import UnitOfWorkFactory
from workforce.application.use_cases.assign_work_item import (
    AssignmentEngine,
    AssignmentResult,
    supervises,
)
from workforce.application.use_cases.assignment_history import load_performance
from workforce.domain.clock import utcnow
from workforce.domain.entities.work_item import ACTIVE_STATUSES, WorkItem
from workforce.domain.errors import ForbiddenActionError, NotFoundError
from workforce.domain.policies.load_balancing import (
    PlannedMove,
    plan_load_balancing,
    plan_performance_moves,
)
from workforce.domain.value_objects.actor import SYSTEM_ACTOR, Actor
from workforce.domain.value_objects.enums import ItemStatus
from workforce.domain.value_objects.work_item_ref import WorkItemRef

logger = logging.getLogger(__name__)


def _item_to_dict(item: WorkItem) -> dict:
    return {
        "type": item.kind.value,
        "item_id": item.item_id,
        "status": item.status.value,
        "priority": item.priority.value,
        "department": item.department,
        "assigned_to": item.assigned_to,
        "assigned_at": item.assigned_at.isoformat() if item.assigned_at else None,
        "started_at": item.started_at.isoformat() if item.started_at else None,
        "escalation_status": item.escalation_status.value,
    }


class ReassignmentManager:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        engine: AssignmentEngine,
        high_utilization_threshold: float = 0.8,
        performance_window: timedelta = timedelta(days=7),
        return_rate_threshold: float = 0.3,
        min_samples: int = 5,
        max_moves_per_agent: int = 2,
        do_not_disturb: timedelta = timedelta(minutes=30),
        clock: Callable[[], datetime] = utcnow,
    ):
        self._uow_factory = uow_factory
        self._engine = engine
        self._high_threshold = high_utilization_threshold
        self._performance_window = performance_window
        self._return_rate_threshold = return_rate_threshold
        self._min_samples = min_samples
        self._max_moves_per_agent = max_moves_per_agent
        self._do_not_disturb = do_not_disturb
        self._clock = clock

    async def reassign(
        self, ref: WorkItemRef, new_agent_id: str, reason: str | None, actor: Actor
    ) -> AssignmentResult:
        return await self._engine.reassign(ref, new_agent_id, reason, actor)

    async def get_reassignable_assignments(self, agent_id: str) -> list[dict]:
        """ASSIGNED items plus IN_PROGRESS items started less than the do-not-disturb age ago."""
        async with self._uow_factory() as uow:
            if await uow.agents.get_by_id(agent_id) is None:
                raise NotFoundError(f"Agent {agent_id} not found")
            items = await uow.work_items.list_by_agent(agent_id, ACTIVE_STATUSES)
        return [_item_to_dict(i) for i in self._reassignable(items)]

    async def auto_reassign_for_load_balancing(self, actor: Actor = SYSTEM_ACTOR) -> dict:
        self._ensure_supervisor(actor)
        async with self._uow_factory() as uow:
            agents = await uow.agents.get_all()
            pools = {
                a.id: self._reassignable(
                    await uow.work_items.list_by_agent(a.id, ACTIVE_STATUSES)
                )
                for a in agents
                if a.takes_assignments() and a.utilization > self._high_threshold
            }

        moves = plan_load_balancing(agents, pools, self._high_threshold)
        return await self._execute("load balancing", moves, actor)

    async def reassign_for_performance(self, actor: Actor = SYSTEM_ACTOR) -> dict:
        self._ensure_supervisor(actor)
        since = self._clock() - self._performance_window
        async with self._uow_factory() as uow:
            agents = await uow.agents.get_all()
            performance = await load_performance(uow.ledger, since)
            pending = {
                a.id: await uow.work_items.list_by_agent(a.id, frozenset({ItemStatus.ASSIGNED}))
                for a in agents
                if a.takes_assignments()
            }

        moves = plan_performance_moves(
            agents,
            performance,
            pending,
            return_rate_threshold=self._return_rate_threshold,
            min_samples=self._min_samples,
            max_moves_per_agent=self._max_moves_per_agent,
        )
        return await self._execute("performance", moves, actor)

    def _reassignable(self, items: list[WorkItem]) -> list[WorkItem]:
        cutoff = self._clock() - self._do_not_disturb
        return [
            i for i in items
            if i.status == ItemStatus.ASSIGNED
            or (i.status == ItemStatus.IN_PROGRESS and (i.started_at is None or i.started_at > cutoff))
        ]

    @staticmethod
    def _ensure_supervisor(actor: Actor) -> None:
        if not supervises(actor):
            raise ForbiddenActionError("Senior Agent or Head required", rule="SUPERVISOR_ONLY")

    async def _execute(self, sweep: str, moves: list[PlannedMove], actor: Actor) -> dict:
        summary: dict = {"planned": len(moves), "reassigned": 0, "failed": 0, "moves": [], "errors": []}
        for move in moves:
            try:
                result = await self._engine.reassign(move.ref, move.to_agent, move.reason, actor)
            except Exception as exc:
                logger.exception("%s sweep: moving %s to %s failed", sweep, move.ref, move.to_agent)
                summary["failed"] += 1
                summary["errors"].append({"item": str(move.ref), "error": str(exc)})
                continue
            summary["reassigned"] += 1
            summary["moves"].append(
                {
                    "type": move.ref.kind.value,
                    "item_id": move.ref.item_id,
                    "from_agent": result.from_agent,
                    "to_agent": result.agent_id,
                    "reason": move.reason,
                }
            )

        logger.info(
            "%s sweep: planned=%d reassigned=%d failed=%d",
            sweep, summary["planned"], summary["reassigned"], summary["failed"],
        )
        return summary
