"""FastAPI dependency injection — wires adapters into use cases."""

from __future__ import annotations

import logging
from datetime import timedelta

from fastapi import Depends, Header, HTTPException

from workforce.adapters.domain_gateway.http_gateway import HttpDomainGateway
from workforce.adapters.persistence.unit_of_work import sql_uow_factory
from workforce.application.assignment_policy import AssignmentPolicy, parse_strategy
from workforce.application.ports.domain_gateway import DomainGateway
from workforce.application.ports.unit_of_work import UnitOfWorkFactory
from workforce.application.use_cases.agent_directory import AgentDirectory
from workforce.application.use_cases.assign_work_item import AssignmentEngine, supervises
from workforce.application.use_cases.assignment_history import AssignmentHistory
from workforce.application.use_cases.escalate_work_item import EscalationStateMachine
from workforce.application.use_cases.manage_queue import QueueManager
from workforce.application.use_cases.reassign_work import ReassignmentManager
from workforce.config import settings
from workforce.domain.errors import ForbiddenActionError
from workforce.domain.policies.scoring import AdvancedWeights
from workforce.domain.value_objects.actor import SYSTEM_ACTOR_ID, Actor
from workforce.domain.value_objects.enums import RoleTier

logger = logging.getLogger(__name__)

# Singletons: the strategy is process-wide state, the gateway is stateless.
_policy = AssignmentPolicy(
    strategy=parse_strategy(settings.assignment_strategy),
    weights=AdvancedWeights(
        capacity=settings.advanced_weight_capacity,
        speed=settings.advanced_weight_speed,
        quality=settings.advanced_weight_quality,
    ),
)
_gateway = HttpDomainGateway()
_uow_factory = sql_uow_factory()

logger.info("Assignment strategy at startup: %s", _policy.strategy.value)


def get_policy() -> AssignmentPolicy:
    return _policy


def get_gateway() -> DomainGateway:
    return _gateway


def get_uow_factory() -> UnitOfWorkFactory:
    return _uow_factory


def get_engine(
    uow_factory: UnitOfWorkFactory = Depends(get_uow_factory),
    gateway: DomainGateway = Depends(get_gateway),
    policy: AssignmentPolicy = Depends(get_policy),
) -> AssignmentEngine:
    return AssignmentEngine(
        uow_factory=uow_factory,
        gateway=gateway,
        policy=policy,
        max_queue_attempts=settings.queue_max_attempts,
        performance_window=timedelta(days=settings.performance_window_days),
    )


def get_queue_manager(
    uow_factory: UnitOfWorkFactory = Depends(get_uow_factory),
    gateway: DomainGateway = Depends(get_gateway),
    engine: AssignmentEngine = Depends(get_engine),
) -> QueueManager:
    return QueueManager(
        uow_factory=uow_factory,
        gateway=gateway,
        engine=engine,
        sla_seconds=settings.queue_sla_seconds,
        critical_backlog=settings.queue_critical_backlog,
        max_attempts=settings.queue_max_attempts,
    )


def get_reassignment_manager(
    uow_factory: UnitOfWorkFactory = Depends(get_uow_factory),
    engine: AssignmentEngine = Depends(get_engine),
) -> ReassignmentManager:
    return ReassignmentManager(
        uow_factory=uow_factory,
        engine=engine,
        high_utilization_threshold=settings.high_utilization_threshold,
        performance_window=timedelta(days=settings.performance_window_days),
        return_rate_threshold=settings.return_rate_threshold,
        min_samples=settings.performance_min_samples,
        max_moves_per_agent=settings.performance_max_moves_per_agent,
        do_not_disturb=timedelta(seconds=settings.do_not_disturb_seconds),
    )


def get_escalation_machine(
    uow_factory: UnitOfWorkFactory = Depends(get_uow_factory),
    gateway: DomainGateway = Depends(get_gateway),
    engine: AssignmentEngine = Depends(get_engine),
) -> EscalationStateMachine:
    return EscalationStateMachine(
        uow_factory=uow_factory,
        gateway=gateway,
        engine=engine,
        escalation_sla=timedelta(hours=settings.escalation_sla_hours),
    )


def get_history(uow_factory: UnitOfWorkFactory = Depends(get_uow_factory)) -> AssignmentHistory:
    return AssignmentHistory(uow_factory)


def get_directory(uow_factory: UnitOfWorkFactory = Depends(get_uow_factory)) -> AgentDirectory:
    return AgentDirectory(uow_factory)


def get_actor(
    x_actor_id: str | None = Header(default=None),
    x_actor_tier: str | None = Header(default=None),
) -> Actor:
    """Caller identity, set by the upstream auth layer."""
    if not x_actor_id or not x_actor_tier:
        raise HTTPException(status_code=401, detail="Missing caller identity")
    try:
        tier = RoleTier(x_actor_tier.strip().upper())
    except ValueError:
        raise HTTPException(status_code=401, detail="Unknown caller tier") from None
    actor_id = x_actor_id.strip()
    if actor_id.upper() == SYSTEM_ACTOR_ID:
        raise HTTPException(status_code=401, detail="Reserved caller id")
    return Actor(id=actor_id, tier=tier)


def get_supervisor(actor: Actor = Depends(get_actor)) -> Actor:
    """Senior Agent, Head or the system; anyone else sees a generic not-found."""
    if not supervises(actor):
        raise ForbiddenActionError("Senior Agent or Head required", rule="SUPERVISOR_ONLY")
    return actor
