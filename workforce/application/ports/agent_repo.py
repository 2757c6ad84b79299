"""Port interface for the agent directory."""

from abc import ABC, abstractmethod
from datetime import datetime

from workforce.domain.entities.agent import Agent


class AgentRepository(ABC):
    @abstractmethod
    async def save(self, agent: Agent) -> Agent:
        ...

    @abstractmethod
    async def get_by_id(self, agent_id: str) -> Agent | None:
        ...

    @abstractmethod
    async def list_by_department(self, department: str) -> list[Agent]:
        """All agents of a department, heads included, ordered by id."""
        ...

    @abstractmethod
    async def get_all(self) -> list[Agent]:
        ...

    @abstractmethod
    async def adjust_workload(self, agent_id: str, delta: int) -> int:
        """Atomically add *delta* to the workload counter, floored at zero.

        Returns the unfloored value, so a negative result means the counter
        had drifted below the agent's real load. Raises NotFoundError for an
        unknown agent.
        """
        ...

    @abstractmethod
    async def reserve_slot(self, agent_id: str) -> bool:
        """Add one to the counter only while it is below capacity.

        The check and the increment are one statement, so two transactions
        cannot both take an agent's last free slot. False means no slot was
        free (or the agent is unknown).
        """
        ...

    @abstractmethod
    async def set_workload(self, agent_id: str, workload: int) -> None:
        ...

    @abstractmethod
    async def touch_activity(self, agent_id: str, at: datetime) -> None:
        ...
