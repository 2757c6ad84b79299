"""AgentDirectory — roster reads, the assignment dashboard and counter reconciliation."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime

from workforce.application.ports.unit_of_work import UnitOfWorkFactory
from workforce.domain.clock import utcnow
from workforce.domain.entities.agent import Agent
from workforce.domain.errors import NotFoundError

logger = logging.getLogger(__name__)


def agent_to_dict(agent: Agent) -> dict:
    return {
        "id": agent.id,
        "name": agent.name,
        "role_tier": agent.role_tier.value,
        "department": agent.department,
        "capacity": agent.capacity,
        "current_workload": agent.current_workload,
        "free_slots": agent.free_slots,
        "utilization": round(agent.utilization, 4),
        "available": agent.is_available() and agent.takes_assignments(),
        "last_activity": agent.last_activity.isoformat() if agent.last_activity else None,
        "skills": sorted(agent.skills),
    }


class AgentDirectory:
    def __init__(self, uow_factory: UnitOfWorkFactory, clock: Callable[[], datetime] = utcnow):
        self._uow_factory = uow_factory
        self._clock = clock

    async def get_agent(self, agent_id: str) -> dict:
        async with self._uow_factory() as uow:
            agent = await uow.agents.get_by_id(agent_id)
        if agent is None:
            raise NotFoundError(f"Agent {agent_id} not found")
        return agent_to_dict(agent)

    async def list_agents(self, department: str | None = None) -> list[dict]:
        async with self._uow_factory() as uow:
            if department:
                agents = await uow.agents.list_by_department(department)
            else:
                agents = await uow.agents.get_all()
        return [agent_to_dict(a) for a in agents]

    async def dashboard(self) -> dict:
        """Per-agent workload with department and overall totals.

        Heads are listed but do not count towards assignable capacity.
        """
        async with self._uow_factory() as uow:
            agents = await uow.agents.get_all()
            backlog = len(await uow.queue.list_ordered())

        departments: dict[str, dict] = defaultdict(
            lambda: {"agents": 0, "capacity": 0, "workload": 0, "available_agents": 0}
        )
        for agent in agents:
            if not agent.takes_assignments():
                continue
            dept = departments[agent.department]
            dept["agents"] += 1
            dept["capacity"] += agent.capacity
            dept["workload"] += agent.current_workload
            if agent.is_available():
                dept["available_agents"] += 1

        for dept in departments.values():
            dept["utilization"] = round(dept["workload"] / dept["capacity"], 4) if dept["capacity"] else 0.0

        capacity = sum(d["capacity"] for d in departments.values())
        workload = sum(d["workload"] for d in departments.values())
        return {
            "generated_at": self._clock().isoformat(),
            "totals": {
                "agents": sum(d["agents"] for d in departments.values()),
                "capacity": capacity,
                "workload": workload,
                "utilization": round(workload / capacity, 4) if capacity else 0.0,
                "queue_backlog": backlog,
            },
            "departments": dict(sorted(departments.items())),
            "agents": [agent_to_dict(a) for a in agents],
        }

    async def record_activity(self, agent_id: str) -> dict:
        now = self._clock()
        async with self._uow_factory() as uow:
            if await uow.agents.get_by_id(agent_id) is None:
                raise NotFoundError(f"Agent {agent_id} not found")
            await uow.agents.touch_activity(agent_id, now)
            await uow.commit()
        return {"agent_id": agent_id, "last_activity": now.isoformat()}

    async def reconcile_workloads(self) -> dict:
        """Recompute every workload counter from the agent's active items."""
        async with self._uow_factory() as uow:
            agents = await uow.agents.get_all()
            actual = await uow.work_items.count_active_by_agent()
            drift = []
            for agent in agents:
                expected = actual.get(agent.id, 0)
                if agent.current_workload != expected:
                    drift.append(
                        {"agent_id": agent.id, "counter": agent.current_workload, "actual": expected}
                    )
                    await uow.agents.set_workload(agent.id, expected)
            await uow.commit()

        if drift:
            logger.warning("Workload drift corrected for %d agents", len(drift))
        return {"checked": len(agents), "corrected": len(drift), "drift": drift}
