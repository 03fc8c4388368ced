"""HTTP translation of the marketplace error taxonomy.

Protean's own handlers (``register_exception_handlers``) cover
``ValidationError`` and ``ObjectNotFoundError``; the handlers here map the
remaining classes from ``marketplace.errors``.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from marketplace.errors import (
    ConflictError,
    InvariantViolation,
    PaymentError,
    RemoteTimeout,
    RemoteUnavailable,
    TransportError,
)

logger = structlog.get_logger(__name__)

_STATUS_CODES = (
    (ConflictError, 409),
    (PaymentError, 402),
    (RemoteTimeout, 504),
    (RemoteUnavailable, 503),
    (TransportError, 502),
)


def _status_for(exc) -> int:
    for error_class, status_code in _STATUS_CODES:
        if isinstance(exc, error_class):
            return status_code
    return 500


async def marketplace_error_handler(request: Request, exc) -> JSONResponse:
    status_code = _status_for(exc)
    logger.info("Request rejected", path=request.url.path, status_code=status_code, code=exc.code)
    return JSONResponse(status_code=status_code, content={"error": exc.to_dict()})


async def invariant_violation_handler(request: Request, exc: InvariantViolation) -> JSONResponse:
    logger.error("Invariant violated", path=request.url.path, code=exc.code, message=exc.message, details=exc.details)
    return JSONResponse(status_code=500, content={"error": {"code": exc.code, "message": "Internal error"}})


def register_error_handlers(app: FastAPI) -> None:
    register_exception_handlers(app)
    for error_class in (ConflictError, PaymentError, TransportError):
        app.add_exception_handler(error_class, marketplace_error_handler)
    app.add_exception_handler(InvariantViolation, invariant_violation_handler)
