"""Escalation endpoints — escalate, review, re-open and the pending list."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from workforce.application.use_cases.escalate_work_item import EscalationStateMachine, parse_target
from workforce.domain.value_objects.actor import Actor
from workforce.domain.value_objects.enums import EscalationStatus
from workforce.infrastructure.api.dependencies import get_actor, get_escalation_machine
from workforce.infrastructure.api.routes_assignment import parse_ref
from workforce.infrastructure.api.schemas import EscalateRequest, FeedbackRequest, ReopenRequest

router = APIRouter(prefix="/escalation", tags=["escalation"])


@router.get("/pending")
async def pending_escalations(
    target: str | None = None,
    status: EscalationStatus = EscalationStatus.PENDING,
    machine: EscalationStateMachine = Depends(get_escalation_machine),
):
    items = await machine.list_escalations(status, parse_target(target) if target else None)
    return {"total": len(items), "items": items}


@router.post("/feedback")
async def provide_feedback(
    body: FeedbackRequest,
    actor: Actor = Depends(get_actor),
    machine: EscalationStateMachine = Depends(get_escalation_machine),
):
    return await machine.provide_feedback(body.ref, body.feedback, body.action, actor)


@router.post("/{item_type}/{item_id}/escalate")
async def escalate(
    item_type: str,
    item_id: str,
    body: EscalateRequest,
    actor: Actor = Depends(get_actor),
    machine: EscalationStateMachine = Depends(get_escalation_machine),
):
    return await machine.escalate(parse_ref(item_type, item_id), body.target, body.reason, actor)


@router.post("/{item_type}/{item_id}/reopen")
async def reopen(
    item_type: str,
    item_id: str,
    body: ReopenRequest | None = None,
    actor: Actor = Depends(get_actor),
    machine: EscalationStateMachine = Depends(get_escalation_machine),
):
    reason = body.reason if body else None
    return await machine.reopen(parse_ref(item_type, item_id), actor, reason)
