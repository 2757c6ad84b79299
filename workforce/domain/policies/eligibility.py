"""EligibilityPolicy — may this agent take this work item automatically?"""

from workforce.domain.entities.agent import Agent
from workforce.domain.entities.work_item import WorkItem

DEPARTMENT_MISMATCH = "department mismatch"
AT_CAPACITY = "at capacity"
HEAD_TIER = "head tier does not take assignments"


def ineligibility_reason(agent: Agent, item: WorkItem) -> str | None:
    """Pure function: return why *agent* cannot auto-receive *item*, or None.

    Business rules:
      1. Agent must belong to the item's department.
      2. Heads review escalations and never receive assignments.
      3. Agent must have a free slot (workload strictly below capacity).

    Rule 3 only guards automatic assignment; manual overrides check 1 and 2.
    """
    reason = manual_ineligibility_reason(agent, item)
    if reason:
        return reason
    if not agent.is_available():
        return AT_CAPACITY
    return None


def manual_ineligibility_reason(agent: Agent, item: WorkItem) -> str | None:
    if agent.department != item.department:
        return DEPARTMENT_MISMATCH
    if not agent.takes_assignments():
        return HEAD_TIER
    return None


def is_eligible(agent: Agent, item: WorkItem) -> bool:
    return ineligibility_reason(agent, item) is None
