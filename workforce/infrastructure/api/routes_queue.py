"""Queue endpoints — backlog status, processing, health and analytics."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query

from workforce.application.use_cases.manage_queue import QueueManager
from workforce.domain.value_objects.actor import Actor
from workforce.infrastructure.api.dependencies import get_actor, get_queue_manager, get_supervisor
from workforce.infrastructure.api.schemas import EnqueueRequest, ResolveQueueRequest

router = APIRouter(prefix="/assign/queue", tags=["queue"])


@router.get("/status")
async def queue_status(queue: QueueManager = Depends(get_queue_manager)):
    return await queue.get_queue_status()


@router.post("/enqueue")
async def enqueue(
    body: EnqueueRequest,
    actor: Actor = Depends(get_actor),
    queue: QueueManager = Depends(get_queue_manager),
):
    return await queue.enqueue(body.ref, body.priority, body.reason, actor)


@router.post("/process")
async def process_queue(
    limit: int | None = Query(None, ge=1),
    actor: Actor = Depends(get_supervisor),
    queue: QueueManager = Depends(get_queue_manager),
):
    """Run one sweep now instead of waiting for the background job."""
    return await queue.process_queue(limit)


@router.get("/health")
async def queue_health(queue: QueueManager = Depends(get_queue_manager)):
    return await queue.get_queue_health_status()


@router.get("/analytics")
async def queue_analytics(
    time_range: Literal["1h", "24h", "7d", "30d"] = Query("24h", alias="range"),
    queue: QueueManager = Depends(get_queue_manager),
):
    return await queue.get_queue_analytics(time_range)


@router.post("/resolve")
async def resolve_entry(
    body: ResolveQueueRequest,
    actor: Actor = Depends(get_actor),
    queue: QueueManager = Depends(get_queue_manager),
):
    return await queue.resolve_entry(body.ref, actor, body.reason)
