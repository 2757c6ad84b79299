"""Assignment endpoints — auto/manual assignment, reassignment, strategy, lifecycle, history."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from workforce.application.use_cases.agent_directory import AgentDirectory
from workforce.application.use_cases.assign_work_item import AssignmentEngine
from workforce.application.use_cases.assignment_history import AssignmentHistory
from workforce.application.use_cases.reassign_work import ReassignmentManager
from workforce.domain.value_objects.actor import Actor
from workforce.domain.value_objects.enums import WorkItemKind
from workforce.domain.value_objects.work_item_ref import WorkItemRef
from workforce.infrastructure.api.dependencies import (
    get_actor,
    get_directory,
    get_engine,
    get_history,
    get_reassignment_manager,
    get_supervisor,
)
from workforce.infrastructure.api.schemas import (
    AssignRequest,
    AutoAssignRequest,
    LifecycleRequest,
    ReassignRequest,
    StrategyRequest,
    ScoringPreviewRequest,
)

router = APIRouter(prefix="/assign", tags=["assignment"])


def parse_ref(item_type: str, item_id: str) -> WorkItemRef:
    return WorkItemRef(WorkItemKind(item_type.strip().upper()), item_id)


# ── Assignment ──────────────────────────────────────────────────────

@router.post("/auto-assign")
async def auto_assign(
    body: AutoAssignRequest,
    actor: Actor = Depends(get_actor),
    engine: AssignmentEngine = Depends(get_engine),
):
    """Assign to the best eligible agent, or queue the item when nobody qualifies."""
    result = await engine.assign_to_best_agent(body.ref, body.priority, actor)
    return result.to_dict()


@router.post("/assign")
async def assign(
    body: AssignRequest,
    actor: Actor = Depends(get_actor),
    engine: AssignmentEngine = Depends(get_engine),
):
    result = await engine.assign_to_agent(body.ref, body.agent_id, actor, body.reason)
    return result.to_dict()


@router.post("/reassign")
async def reassign(
    body: ReassignRequest,
    actor: Actor = Depends(get_actor),
    manager: ReassignmentManager = Depends(get_reassignment_manager),
):
    result = await manager.reassign(body.ref, body.new_agent_id, body.reason, actor)
    return result.to_dict()


@router.post("/reassign/auto-load-balancing")
async def reassign_load_balancing(
    actor: Actor = Depends(get_actor),
    manager: ReassignmentManager = Depends(get_reassignment_manager),
):
    return await manager.auto_reassign_for_load_balancing(actor)


@router.post("/reassign/performance-based")
async def reassign_performance(
    actor: Actor = Depends(get_actor),
    manager: ReassignmentManager = Depends(get_reassignment_manager),
):
    return await manager.reassign_for_performance(actor)


@router.get("/reassignable/{agent_id}")
async def reassignable(
    agent_id: str,
    manager: ReassignmentManager = Depends(get_reassignment_manager),
):
    items = await manager.get_reassignable_assignments(agent_id)
    return {"agent_id": agent_id, "total": len(items), "items": items}


# ── Strategy ────────────────────────────────────────────────────────

@router.get("/strategy")
async def get_strategy(engine: AssignmentEngine = Depends(get_engine)):
    return engine.get_assignment_strategy()


@router.put("/strategy")
async def set_strategy(
    body: StrategyRequest,
    actor: Actor = Depends(get_actor),
    engine: AssignmentEngine = Depends(get_engine),
):
    return engine.set_assignment_strategy(body.strategy, actor)


@router.post("/test-scoring")
async def test_scoring(
    body: ScoringPreviewRequest,
    engine: AssignmentEngine = Depends(get_engine),
):
    """Dry run: rank the candidates for an item without assigning it."""
    return await engine.test_assignment_scoring(body.ref, body.priority)


# ── Lifecycle ───────────────────────────────────────────────────────

@router.post("/start")
async def start_work(
    body: LifecycleRequest,
    actor: Actor = Depends(get_actor),
    engine: AssignmentEngine = Depends(get_engine),
):
    return await engine.start_work(body.ref, actor)


@router.post("/complete")
async def complete(
    body: LifecycleRequest,
    actor: Actor = Depends(get_actor),
    engine: AssignmentEngine = Depends(get_engine),
):
    return await engine.complete(body.ref, actor, body.reason)


# ── Agents ──────────────────────────────────────────────────────────

@router.get("/dashboard")
async def dashboard(directory: AgentDirectory = Depends(get_directory)):
    return await directory.dashboard()


@router.get("/agents")
async def list_agents(
    department: str | None = None,
    directory: AgentDirectory = Depends(get_directory),
):
    agents = await directory.list_agents(department)
    return {"total": len(agents), "agents": agents}


@router.get("/agents/{agent_id}")
async def get_agent(agent_id: str, directory: AgentDirectory = Depends(get_directory)):
    return await directory.get_agent(agent_id)


@router.post("/agents/{agent_id}/activity")
async def record_activity(
    agent_id: str,
    actor: Actor = Depends(get_actor),
    directory: AgentDirectory = Depends(get_directory),
):
    return await directory.record_activity(agent_id)


@router.post("/agents/reconcile")
async def reconcile_workloads(
    actor: Actor = Depends(get_supervisor),
    directory: AgentDirectory = Depends(get_directory),
):
    return await directory.reconcile_workloads()


# ── History ─────────────────────────────────────────────────────────

@router.get("/history/item/{item_type}/{item_id}")
async def item_history(
    item_type: str,
    item_id: str,
    history: AssignmentHistory = Depends(get_history),
):
    ref = parse_ref(item_type, item_id)
    records = await history.item_history(ref)
    return {"type": ref.kind.value, "item_id": ref.item_id, "records": records}


@router.get("/history/agent/{agent_id}")
async def agent_history(
    agent_id: str,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    history: AssignmentHistory = Depends(get_history),
):
    return await history.agent_history(agent_id, limit, offset)


@router.get("/history/recent")
async def recent_assignments(
    limit: int = Query(20, ge=1, le=200),
    history: AssignmentHistory = Depends(get_history),
):
    return {"records": await history.recent_assignments(limit)}


@router.get("/history/reassignments")
async def reassignment_history(
    agent_id: str | None = None,
    since: datetime | None = None,
    limit: int = Query(50, ge=1, le=200),
    history: AssignmentHistory = Depends(get_history),
):
    return {"records": await history.reassignment_history(agent_id, since, limit)}


@router.get("/history/item/{item_type}/{item_id}/owner")
async def item_owner(
    item_type: str,
    item_id: str,
    history: AssignmentHistory = Depends(get_history),
):
    return await history.ownership(parse_ref(item_type, item_id))
