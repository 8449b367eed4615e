"""Exception handlers mapping engine errors to JSON responses."""

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse

from risk_controls.errors import (
    AuthorizationError,
    LedgerError,
    NotFoundError,
    PolicyRejection,
    RiskControlsError,
    ValidationError,
)

logger = structlog.get_logger()


def _status_for(exc: RiskControlsError) -> int:
    # ConfigInconsistency is a ValidationError
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, AuthorizationError):
        return 403
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, LedgerError):
        return 409
    if isinstance(exc, PolicyRejection):
        return 422
    return 500


async def risk_controls_exception_handler(
    request: Request, exc: RiskControlsError
) -> JSONResponse:
    request_id = getattr(request.state, "request_id", "unknown")
    status_code = _status_for(exc)

    content = {"error": exc.code, "message": exc.message, "request_id": request_id}
    if isinstance(exc, PolicyRejection):
        content["kind"] = exc.kind
        if exc.hours_remaining is not None:
            content["hours_remaining"] = exc.hours_remaining
    elif isinstance(exc, LedgerError):
        # Storage detail is logged, never returned
        logger.warning("ledger_error", request_id=request_id, error=exc.message, **exc.details)
        return JSONResponse(status_code=status_code, content=content)

    logger.warning(exc.code, request_id=request_id, error=exc.message, status_code=status_code)
    return JSONResponse(status_code=status_code, content=content)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = getattr(request.state, "request_id", "unknown")
    logger.exception("unhandled_exception", request_id=request_id, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred",
            "request_id": request_id,
        },
    )
