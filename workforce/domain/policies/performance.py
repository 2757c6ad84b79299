"""PerformancePolicy — per-agent quality/speed signals derived from the ledger."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from workforce.domain.entities.assignment_record import AssignmentRecord
from workforce.domain.value_objects.enums import EscalationAction, LedgerAction


@dataclass
class AgentPerformance:
    agent_id: str
    completions: int = 0
    approvals: int = 0
    rejections: int = 0
    returns: int = 0
    total_resolution_seconds: float = 0.0
    timed_completions: int = 0

    @property
    def samples(self) -> int:
        # A rejected item is also completed, a returned one is not.
        return self.completions + self.returns

    @property
    def return_rate(self) -> float:
        if self.samples == 0:
            return 0.0
        return (self.rejections + self.returns) / self.samples

    @property
    def avg_resolution_seconds(self) -> float | None:
        if self.timed_completions == 0:
            return None
        return self.total_resolution_seconds / self.timed_completions

    def to_dict(self) -> dict:
        avg = self.avg_resolution_seconds
        return {
            "agent_id": self.agent_id,
            "completions": self.completions,
            "approvals": self.approvals,
            "rejections": self.rejections,
            "returns": self.returns,
            "samples": self.samples,
            "return_rate": round(self.return_rate, 4),
            "avg_resolution_seconds": round(avg, 1) if avg is not None else None,
        }


def compute_performance(records: Iterable[AssignmentRecord]) -> dict[str, AgentPerformance]:
    """Fold ledger records into per-agent metrics.

    - COMPLETED records count towards the assignee (``to_agent``) and carry
      ``details["resolution_seconds"]``.
    - ESCALATION_REVIEWED records count towards ``details["assignee"]`` with
      ``details["action"]`` in approve / reject / return.
    """
    metrics: dict[str, AgentPerformance] = {}

    def _get(agent_id: str) -> AgentPerformance:
        if agent_id not in metrics:
            metrics[agent_id] = AgentPerformance(agent_id=agent_id)
        return metrics[agent_id]

    for record in records:
        if record.action == LedgerAction.COMPLETED and record.to_agent:
            perf = _get(record.to_agent)
            perf.completions += 1
            seconds = record.details.get("resolution_seconds")
            if seconds is not None:
                perf.total_resolution_seconds += float(seconds)
                perf.timed_completions += 1
        elif record.action == LedgerAction.ESCALATION_REVIEWED:
            assignee = record.details.get("assignee")
            if not assignee:
                continue
            perf = _get(assignee)
            decision = record.details.get("action")
            if decision == EscalationAction.APPROVE.value:
                perf.approvals += 1
            elif decision == EscalationAction.REJECT.value:
                perf.rejections += 1
            elif decision == EscalationAction.RETURN.value:
                perf.returns += 1

    return metrics
