"""Port interface for round-robin rotation state."""

from abc import ABC, abstractmethod


class RoundRobinRepository(ABC):
    @abstractmethod
    async def get_counts(self, rr_key: str) -> dict[str, int]:
        """Assignments per agent since the rotation under *rr_key* was last reset."""
        ...

    @abstractmethod
    async def record(self, rr_key: str, agent_id: str) -> int:
        """Atomically increment the agent's counter and return the OLD value.

        Must use row-level locking (SELECT ... FOR UPDATE) for safety.
        """
        ...

    @abstractmethod
    async def reset(self, rr_key: str) -> None:
        ...
