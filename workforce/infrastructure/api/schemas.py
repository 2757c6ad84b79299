"""Request bodies for the assignment, queue and escalation endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field

from workforce.domain.value_objects.enums import Priority, WorkItemKind
from workforce.domain.value_objects.work_item_ref import WorkItemRef


class ItemRequest(BaseModel):
    type: WorkItemKind
    item_id: str = Field(min_length=1, validation_alias="itemId")

    model_config = {"populate_by_name": True}

    @property
    def ref(self) -> WorkItemRef:
        return WorkItemRef(self.type, self.item_id)


class AutoAssignRequest(ItemRequest):
    priority: Priority | None = None


class AssignRequest(ItemRequest):
    agent_id: str = Field(min_length=1, validation_alias="agentId")
    reason: str | None = None


class ReassignRequest(ItemRequest):
    new_agent_id: str = Field(min_length=1, validation_alias="newAgentId")
    reason: str | None = None


class StrategyRequest(BaseModel):
    strategy: str


class ScoringPreviewRequest(ItemRequest):
    priority: Priority | None = None


class LifecycleRequest(ItemRequest):
    reason: str | None = None


class EnqueueRequest(ItemRequest):
    priority: Priority | None = None
    reason: str = "Queued for later assignment"


class ResolveQueueRequest(ItemRequest):
    reason: str | None = None


class EscalateRequest(BaseModel):
    target: str
    reason: str


class FeedbackRequest(BaseModel):
    type: WorkItemKind
    id: str = Field(min_length=1)
    feedback: str
    action: str

    @property
    def ref(self) -> WorkItemRef:
        return WorkItemRef(self.type, self.id)


class ReopenRequest(BaseModel):
    reason: str | None = None
