"""LoadBalancingPolicy — plan item moves that even out utilization.

Planning is pure: it works on a copy of the workload counters and returns an
ordered list of moves. The caller executes each move as its own reassignment
transaction, so a failed move simply leaves that item where it was.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass

from workforce.domain.entities.agent import Agent
from workforce.domain.entities.work_item import WorkItem
from workforce.domain.policies.performance import AgentPerformance
from workforce.domain.value_objects.work_item_ref import WorkItemRef


@dataclass(frozen=True)
class PlannedMove:
    ref: WorkItemRef
    from_agent: str
    to_agent: str
    reason: str


class _Load:
    """Mutable workload snapshot used while planning."""

    def __init__(self, agents: list[Agent]):
        self._load = {a.id: a.current_workload for a in agents}
        self._cap = {a.id: a.capacity for a in agents}

    def util(self, agent_id: str, delta: int = 0) -> float:
        cap = self._cap[agent_id]
        if cap <= 0:
            return 1.0
        return (self._load[agent_id] + delta) / cap

    def has_room(self, agent_id: str) -> bool:
        return self._load[agent_id] < self._cap[agent_id]

    def move(self, from_agent: str, to_agent: str) -> None:
        self._load[from_agent] -= 1
        self._load[to_agent] += 1


def _by_department(agents: list[Agent]) -> dict[str, list[Agent]]:
    groups: dict[str, list[Agent]] = {}
    for agent in sorted(agents, key=lambda a: a.id):
        if agent.takes_assignments():
            groups.setdefault(agent.department, []).append(agent)
    return groups


def plan_load_balancing(
    agents: list[Agent],
    reassignable: Mapping[str, list[WorkItem]],
    high_threshold: float,
) -> list[PlannedMove]:
    """Move newest non-urgent items off agents above *high_threshold*.

    Within each department, repeatedly take the most utilized agent above the
    threshold and hand its newest movable item to the least utilized peer,
    as long as the peer stays at or below the threshold and the move narrows
    the gap between the two. URGENT items are never planned.
    """
    load = _Load(agents)
    moves: list[PlannedMove] = []

    for department, members in sorted(_by_department(agents).items()):
        pools = {
            a.id: deque(
                item
                for item in sorted(
                    reassignable.get(a.id, []),
                    key=lambda i: (i.assigned_at.timestamp() if i.assigned_at else 0.0, i.item_id),
                    reverse=True,
                )
                if not item.is_urgent() and item.department == department
            )
            for a in members
        }
        exhausted: set[str] = set()

        while True:
            sources = [
                a for a in members
                if a.id not in exhausted and pools[a.id] and load.util(a.id) > high_threshold
            ]
            if not sources:
                break
            source = min(sources, key=lambda a: (-load.util(a.id), a.id))

            targets = [a for a in members if a.id != source.id and load.has_room(a.id)]
            if not targets:
                exhausted.add(source.id)
                continue
            target = min(targets, key=lambda a: (load.util(a.id), a.id))

            target_after = load.util(target.id, +1)
            source_after = load.util(source.id, -1)
            if target_after > high_threshold or target_after > source_after:
                exhausted.add(source.id)
                continue

            item = pools[source.id].popleft()
            load.move(source.id, target.id)
            moves.append(
                PlannedMove(
                    ref=item.ref,
                    from_agent=source.id,
                    to_agent=target.id,
                    reason=(
                        f"Auto-reassignment for load balancing "
                        f"({source.id} above {high_threshold:.0%} utilization)"
                    ),
                )
            )

    return moves


def plan_performance_moves(
    agents: list[Agent],
    performance: Mapping[str, AgentPerformance],
    pending: Mapping[str, list[WorkItem]],
    return_rate_threshold: float,
    min_samples: int,
    max_moves_per_agent: int,
) -> list[PlannedMove]:
    """Redirect the oldest not-started items of underperforming agents.

    An agent underperforms when it has at least *min_samples* finished or
    returned items in the window and its return rate exceeds the threshold.
    Each item goes to the best performing peer in the same department that
    still has a free slot: lowest return rate, then fastest resolution.
    """
    load = _Load(agents)
    moves: list[PlannedMove] = []

    def _perf(agent_id: str) -> AgentPerformance:
        return performance.get(agent_id) or AgentPerformance(agent_id=agent_id)

    def _flagged(agent: Agent) -> bool:
        perf = _perf(agent.id)
        return perf.samples >= min_samples and perf.return_rate > return_rate_threshold

    for department, members in sorted(_by_department(agents).items()):
        flagged = sorted(
            (a for a in members if _flagged(a)),
            key=lambda a: (-_perf(a.id).return_rate, a.id),
        )
        flagged_ids = {a.id for a in flagged}

        for agent in flagged:
            items = sorted(
                (i for i in pending.get(agent.id, []) if i.department == department),
                key=lambda i: (i.assigned_at.timestamp() if i.assigned_at else 0.0, i.item_id),
            )
            rate = _perf(agent.id).return_rate
            for item in items[:max_moves_per_agent]:
                peers = [
                    p for p in members
                    if p.id not in flagged_ids
                    and load.has_room(p.id)
                    and _perf(p.id).return_rate < rate
                ]
                if not peers:
                    break
                best = min(
                    peers,
                    key=lambda p: (
                        _perf(p.id).return_rate,
                        _perf(p.id).avg_resolution_seconds
                        if _perf(p.id).avg_resolution_seconds is not None
                        else float("inf"),
                        load.util(p.id),
                        p.id,
                    ),
                )
                load.move(agent.id, best.id)
                moves.append(
                    PlannedMove(
                        ref=item.ref,
                        from_agent=agent.id,
                        to_agent=best.id,
                        reason=f"Performance-based reassignment (return rate {rate:.0%})",
                    )
                )

    return moves
