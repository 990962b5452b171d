"""Global exception handlers — map engine errors to HTTP responses.

``ValidationError`` is the only engine error whose detail reaches the
client: its messages are written for participants.  Configuration,
integrity and evaluation failures are logged in full and answered with a
generic 500 so rule text and internal ids stay server-side.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from screening_engine.errors import (
    ConfigurationError,
    EvaluationError,
    IntegrityError,
    ScreeningError,
    ValidationError,
)

logger = logging.getLogger(__name__)


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    logger.info("Validation failed at %s: %s", request.url, exc)
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Validation failed",
            "errors": exc.messages,
            "field_errors": [
                {"field": fe.field, "message": fe.message} for fe in exc.field_errors
            ],
        },
    )


async def screening_error_handler(request: Request, exc: ScreeningError) -> JSONResponse:
    """Configuration / integrity / evaluation failures — 500 with a generic body."""
    if isinstance(exc, ConfigurationError):
        kind = "Configuration error"
    elif isinstance(exc, IntegrityError):
        kind = "Integrity error"
    elif isinstance(exc, EvaluationError):
        kind = "Rule evaluation error"
    else:
        kind = "Screening error"
    logger.error("%s at %s: %s", kind, request.url, exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions — log full traceback, return 500."""
    logger.exception("Unhandled exception at %s", request.url)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})
