"""Map the engine error taxonomy to stable HTTP responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from workforce.domain.errors import (
    AssignmentConflictError,
    ConfigInvalidError,
    DomainGatewayError,
    ForbiddenActionError,
    IneligibleAgentError,
    InvalidEscalationError,
    NotFoundError,
    WorkforceError,
)

logger = logging.getLogger(__name__)

STATUS_CODES: dict[type[WorkforceError], int] = {
    NotFoundError: 404,
    IneligibleAgentError: 422,
    AssignmentConflictError: 409,
    InvalidEscalationError: 422,
    ConfigInvalidError: 400,
    ForbiddenActionError: 404,
    DomainGatewayError: 502,
}


def _body(code: str, message: str, rule: str | None) -> dict:
    return {"status": "error", "code": code, "message": message, "rule": rule}


async def workforce_error_handler(request: Request, exc: WorkforceError) -> JSONResponse:
    if isinstance(exc, ForbiddenActionError):
        # Same shape as an unknown resource so protected items are not revealed.
        logger.info("Refused %s %s: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=404, content=_body(NotFoundError.code, "Not found", None))

    status_code = STATUS_CODES.get(type(exc), 500)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content=_body(exc.code, exc.message, exc.rule))


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=400, content=_body("BAD_REQUEST", str(exc), None))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(WorkforceError, workforce_error_handler)
    app.add_exception_handler(ValueError, value_error_handler)
