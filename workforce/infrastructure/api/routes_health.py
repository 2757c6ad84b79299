"""Health check endpoint."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from workforce.adapters.persistence.database import get_session
from workforce.application.assignment_policy import AssignmentPolicy
from workforce.application.use_cases.manage_queue import QueueManager
from workforce.domain.value_objects.enums import QueueHealth
from workforce.infrastructure.api.dependencies import get_policy, get_queue_manager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(
    session: AsyncSession = Depends(get_session),
    queue: QueueManager = Depends(get_queue_manager),
    policy: AssignmentPolicy = Depends(get_policy),
):
    """Database connectivity, active strategy and a backlog summary."""
    try:
        result = await session.execute(text("SELECT 1"))
        result.scalar()
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {e}"

    backlog = None
    if db_status == "connected":
        try:
            queue_health = await queue.get_queue_health_status()
            backlog = {k: queue_health[k] for k in ("status", "score", "backlog", "overdue", "stuck")}
        except Exception:
            logger.exception("Queue health unavailable")

    healthy = (
        db_status == "connected"
        and backlog is not None
        and backlog["status"] != QueueHealth.CRITICAL.value
    )
    return {
        "status": "ok" if healthy else "degraded",
        "database": db_status,
        "strategy": policy.strategy.value,
        "queue": backlog,
        "service": "Workforce Assignment & Escalation Engine",
    }
