"""Agent entity — an operations employee who handles work items."""

from dataclasses import dataclass, field
from datetime import datetime

from workforce.domain.value_objects.enums import RoleTier


@dataclass
class Agent:
    id: str
    name: str
    role_tier: RoleTier
    department: str
    capacity: int
    current_workload: int = 0
    last_activity: datetime | None = None
    skills: set[str] = field(default_factory=set)

    @property
    def free_slots(self) -> int:
        return self.capacity - self.current_workload

    @property
    def utilization(self) -> float:
        if self.capacity <= 0:
            return 1.0
        return self.current_workload / self.capacity

    def is_available(self) -> bool:
        return self.current_workload < self.capacity

    def has_skill(self, skill: str) -> bool:
        return skill.upper() in self.skills

    def takes_assignments(self) -> bool:
        # Heads review escalations; they never take queue work.
        return self.role_tier != RoleTier.HEAD
