"""Audit endpoints — read-only ledger queries and agent performance."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from workforce.application.use_cases.assignment_history import AssignmentHistory
from workforce.domain.value_objects.actor import Actor
from workforce.domain.value_objects.enums import LedgerAction, WorkItemKind
from workforce.infrastructure.api.dependencies import get_history, get_supervisor

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("/logs")
async def audit_logs(
    entity_type: WorkItemKind | None = None,
    entity_id: str | None = None,
    agent_id: str | None = None,
    performed_by: str | None = None,
    action: LedgerAction | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    actor: Actor = Depends(get_supervisor),
    history: AssignmentHistory = Depends(get_history),
):
    return await history.audit_logs(
        kind=entity_type,
        item_id=entity_id,
        agent_id=agent_id,
        performed_by=performed_by,
        action=action,
        start=start_date,
        end=end_date,
        page=page,
        page_size=page_size,
    )


@router.get("/stats")
async def audit_stats(
    performed_by: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    actor: Actor = Depends(get_supervisor),
    history: AssignmentHistory = Depends(get_history),
):
    return await history.audit_stats(performed_by, start_date, end_date)


@router.get("/performance/{agent_id}")
async def agent_performance(
    agent_id: str,
    window_days: int = Query(7, ge=1, le=90),
    actor: Actor = Depends(get_supervisor),
    history: AssignmentHistory = Depends(get_history),
):
    return await history.agent_performance(agent_id, window_days)


@router.get("/agents-performance")
async def agents_performance(
    window_days: int = Query(7, ge=1, le=90),
    department: str | None = None,
    actor: Actor = Depends(get_supervisor),
    history: AssignmentHistory = Depends(get_history),
):
    return await history.agents_performance(window_days, department)
