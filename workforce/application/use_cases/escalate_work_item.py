"""EscalationStateMachine — NONE → PENDING → REVIEWED, plus re-open.

The machine owns ``escalation_status`` and its sub-fields only. The domain
decision of a review (approve / reject) is handed to the owning domain
through the gateway inside the review transaction, so a failing domain call
rolls the review back.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from workforce.application.ports.domain_gateway import DomainGateway
from workforce.application.ports.unit_of_work import UnitOfWorkFactory
from workforce.application.use_cases.assign_work_item import (
    AssignmentEngine,
    register_item,
    retry_on_stale,
    save_item,
    supervises,
)
from workforce.domain.clock import utcnow
from workforce.domain.entities.assignment_record import AssignmentRecord
from workforce.domain.entities.work_item import WorkItem
from workforce.domain.errors import ForbiddenActionError, InvalidEscalationError, NotFoundError
from workforce.domain.policies.escalation_rules import (
    check_can_escalate,
    check_can_reopen,
    check_can_review,
    check_target,
    check_text,
)
from workforce.domain.value_objects.actor import SYSTEM_ACTOR, Actor
from workforce.domain.value_objects.enums import (
    EscalationAction,
    EscalationStatus,
    LedgerAction,
    RoleTier,
)
from workforce.domain.value_objects.work_item_ref import WorkItemRef

logger = logging.getLogger(__name__)


def parse_target(raw: str | RoleTier) -> RoleTier:
    try:
        return RoleTier(str(raw.value if isinstance(raw, RoleTier) else raw).strip().upper())
    except ValueError:
        raise InvalidEscalationError(
            InvalidEscalationError.INVALID_TARGET,
            "Invalid escalation target. Must be SENIOR_AGENT or HEAD",
        ) from None


def parse_action(raw: str | EscalationAction) -> EscalationAction:
    try:
        return EscalationAction(str(raw.value if isinstance(raw, EscalationAction) else raw).strip().lower())
    except ValueError:
        raise InvalidEscalationError(
            InvalidEscalationError.INVALID_ACTION,
            "Invalid action. Must be approve, reject, or return",
        ) from None


def escalation_to_dict(item: WorkItem) -> dict:
    return {
        "type": item.kind.value,
        "item_id": item.item_id,
        "department": item.department,
        "priority": item.priority.value,
        "status": item.status.value,
        "assigned_to": item.assigned_to,
        "escalation_status": item.escalation_status.value,
        "escalated_by": item.escalated_by,
        "escalated_to": item.escalated_to.value if item.escalated_to else None,
        "escalation_reason": item.escalation_reason,
        "escalated_at": item.escalated_at.isoformat() if item.escalated_at else None,
        "escalation_feedback": item.escalation_feedback,
        "escalation_action": item.escalation_action.value if item.escalation_action else None,
        "reviewed_by": item.reviewed_by,
        "reviewed_at": item.reviewed_at.isoformat() if item.reviewed_at else None,
    }


class EscalationStateMachine:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        gateway: DomainGateway,
        engine: AssignmentEngine,
        escalation_sla: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utcnow,
    ):
        self._uow_factory = uow_factory
        self._gateway = gateway
        self._engine = engine
        self._escalation_sla = escalation_sla
        self._clock = clock

    async def escalate(
        self,
        ref: WorkItemRef,
        target: str | RoleTier,
        reason: str,
        actor: Actor,
    ) -> dict:
        """Raise *ref* to *target*. Every rule violation is an InvalidEscalationError."""
        target_tier = parse_target(target)
        cleaned = check_text(reason, "Escalation reason")
        check_target(actor.tier, target_tier)
        return await retry_on_stale(
            "escalate", ref, lambda: self._try_escalate(ref, target_tier, cleaned, actor)
        )

    async def provide_feedback(
        self,
        ref: WorkItemRef,
        feedback: str,
        action: str | EscalationAction,
        actor: Actor,
    ) -> dict:
        """Head reviews a pending escalation.

        ``approve`` and ``reject`` finish the item through the engine once the
        review is committed; ``return`` leaves it with its agent.
        """
        decision = parse_action(action)
        cleaned = check_text(feedback, "Feedback")
        if actor.tier != RoleTier.HEAD:
            raise InvalidEscalationError(
                InvalidEscalationError.WRONG_TIER, "Only Head can provide feedback"
            )
        item = await retry_on_stale(
            "review", ref, lambda: self._try_review(ref, cleaned, decision, actor)
        )

        result = escalation_to_dict(item)
        result["completed"] = False
        if decision in (EscalationAction.APPROVE, EscalationAction.REJECT) and item.is_active():
            try:
                await self._engine.complete(ref, actor, reason=f"Escalation {decision.value}: {cleaned}")
                result["completed"] = True
                result["status"] = "COMPLETED"
            except Exception:
                # The review itself is committed; the item stays active for a manual close.
                logger.exception("Completing %s after review failed", ref)
        return result

    async def reopen(self, ref: WorkItemRef, actor: Actor, reason: str | None = None) -> dict:
        """The owning domain re-opens a reviewed item so it can be escalated again."""
        if not supervises(actor):
            raise ForbiddenActionError("Senior Agent or Head required", rule="SUPERVISOR_ONLY")
        item = await retry_on_stale("reopen", ref, lambda: self._try_reopen(ref, actor, reason))
        return escalation_to_dict(item)

    async def auto_escalate_stale(self) -> dict:
        """Escalate to HEAD every active item left unresolved past the SLA."""
        hours = self._escalation_sla.total_seconds() / 3600
        cutoff = self._clock() - self._escalation_sla
        async with self._uow_factory() as uow:
            stale = await uow.work_items.list_stale_active(cutoff)

        summary: dict = {"checked": len(stale), "escalated": 0, "skipped": 0, "failed": 0, "errors": []}
        for item in stale:
            reason = f"Auto-escalated: not resolved within {hours:g} hours of assignment"
            try:
                await self.escalate(item.ref, RoleTier.HEAD, reason, SYSTEM_ACTOR)
            except InvalidEscalationError as exc:
                logger.info("Auto-escalation skipped %s: %s", item.ref, exc.message)
                summary["skipped"] += 1
                continue
            except Exception as exc:
                logger.exception("Auto-escalation failed for %s", item.ref)
                summary["failed"] += 1
                summary["errors"].append({"item": str(item.ref), "error": str(exc)})
                continue
            summary["escalated"] += 1

        if stale:
            logger.info(
                "Auto-escalation: checked=%d escalated=%d skipped=%d failed=%d",
                summary["checked"], summary["escalated"], summary["skipped"], summary["failed"],
            )
        return summary

    async def list_escalations(
        self,
        status: EscalationStatus = EscalationStatus.PENDING,
        target: RoleTier | None = None,
    ) -> list[dict]:
        async with self._uow_factory() as uow:
            items = await uow.work_items.list_escalations(status, target)
        return [escalation_to_dict(i) for i in items]

    # ── Transactions ──

    async def _try_escalate(
        self, ref: WorkItemRef, target: RoleTier, reason: str, actor: Actor
    ) -> dict:
        now = self._clock()
        info = await self._gateway.get_work_item(ref)
        if info is None:
            raise NotFoundError(f"Work item {ref} not found")

        async with self._uow_factory() as uow:
            item = await uow.work_items.get(ref)
            if item is None:
                item = await register_item(uow, ref, info, now)
            check_can_escalate(item, actor.tier, target, info.domain_status)

            expected = item.version
            item.escalation_status = EscalationStatus.PENDING
            item.escalated_by = actor.id
            item.escalated_to = target
            item.escalation_reason = reason
            item.escalated_at = now
            item.escalation_feedback = None
            item.escalation_action = None
            item.reviewed_by = None
            item.reviewed_at = None
            await save_item(uow, item, expected)

            await uow.ledger.append(
                AssignmentRecord(
                    id=None,
                    ref=ref,
                    action=LedgerAction.ESCALATED,
                    performed_by=actor.id,
                    performed_at=now,
                    reason=reason,
                    details={
                        "target": target.value,
                        "escalated_by_tier": actor.tier.value,
                        "assignee": item.assigned_to,
                        "domain_status": info.domain_status,
                    },
                )
            )
            await uow.commit()

        logger.info("%s escalated to %s by %s", ref, target.value, actor.id)
        return escalation_to_dict(item)

    async def _try_review(
        self, ref: WorkItemRef, feedback: str, decision: EscalationAction, actor: Actor
    ) -> WorkItem:
        now = self._clock()
        async with self._uow_factory() as uow:
            item = await uow.work_items.get(ref)
            if item is None:
                raise NotFoundError(f"Work item {ref} not found")
            check_can_review(item, actor.tier)

            expected = item.version
            item.escalation_status = EscalationStatus.REVIEWED
            item.escalation_feedback = feedback
            item.escalation_action = decision
            item.reviewed_by = actor.id
            item.reviewed_at = now
            await save_item(uow, item, expected)

            await uow.ledger.append(
                AssignmentRecord(
                    id=None,
                    ref=ref,
                    action=LedgerAction.ESCALATION_REVIEWED,
                    performed_by=actor.id,
                    performed_at=now,
                    reason=feedback,
                    details={
                        "action": decision.value,
                        "assignee": item.assigned_to,
                        "escalated_to": item.escalated_to.value if item.escalated_to else None,
                        "escalated_by": item.escalated_by,
                    },
                )
            )
            await self._gateway.apply_escalation_decision(ref, decision, feedback)
            await uow.commit()

        logger.info("%s escalation reviewed by %s: %s", ref, actor.id, decision.value)
        return item

    async def _try_reopen(self, ref: WorkItemRef, actor: Actor, reason: str | None) -> WorkItem:
        now = self._clock()
        async with self._uow_factory() as uow:
            item = await uow.work_items.get(ref)
            if item is None:
                raise NotFoundError(f"Work item {ref} not found")
            check_can_reopen(item)

            previous = item.escalation_action
            expected = item.version
            item.escalation_status = EscalationStatus.NONE
            item.escalated_by = None
            item.escalated_to = None
            item.escalation_reason = None
            item.escalation_feedback = None
            item.escalation_action = None
            item.escalated_at = None
            item.reviewed_by = None
            item.reviewed_at = None
            await save_item(uow, item, expected)

            await uow.ledger.append(
                AssignmentRecord(
                    id=None,
                    ref=ref,
                    action=LedgerAction.ESCALATION_REOPENED,
                    performed_by=actor.id,
                    performed_at=now,
                    reason=reason or "Re-opened by owning domain",
                    details={"previous_action": previous.value if previous else None},
                )
            )
            await uow.commit()

        logger.info("%s escalation re-opened by %s", ref, actor.id)
        return item
