"""Engine error taxonomy.

Every error carries a stable ``code`` that the HTTP layer exposes verbatim.
Escalation and eligibility errors also carry the ``rule`` that failed so
support staff can tell exactly which transition was refused.
"""

from __future__ import annotations


class WorkforceError(Exception):
    code = "WORKFORCE_ERROR"

    def __init__(self, message: str, rule: str | None = None):
        super().__init__(message)
        self.message = message
        self.rule = rule


class NotFoundError(WorkforceError):
    code = "NOT_FOUND"


class IneligibleAgentError(WorkforceError):
    code = "INELIGIBLE_AGENT"


class AssignmentConflictError(WorkforceError):
    code = "ASSIGNMENT_CONFLICT"


class InvalidEscalationError(WorkforceError):
    code = "INVALID_ESCALATION"

    WRONG_TIER = "WRONG_TIER"
    INVALID_TARGET = "INVALID_TARGET"
    ALREADY_ESCALATED = "ALREADY_ESCALATED"
    NOT_ELIGIBLE_STATE = "NOT_ELIGIBLE_STATE"
    REASON_TOO_SHORT = "REASON_TOO_SHORT"
    NOT_PENDING = "NOT_PENDING"
    INVALID_ACTION = "INVALID_ACTION"

    def __init__(self, sub_reason: str, message: str):
        super().__init__(message, rule=sub_reason)
        self.sub_reason = sub_reason


class ConfigInvalidError(WorkforceError):
    code = "CONFIG_INVALID"


class ForbiddenActionError(WorkforceError):
    """Caller's tier does not dominate the operation. Surfaced as not-found."""

    code = "FORBIDDEN"


class DomainGatewayError(WorkforceError):
    """The owning domain could not be reached or refused the call."""

    code = "DOMAIN_UNAVAILABLE"
