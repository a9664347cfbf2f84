"""Global exception handlers — map SDK exceptions to HTTP responses.

Every ``SurveyError`` already knows its HTTP status and client-safe
message, so one handler covers the whole taxonomy.  Storage failures are
reported as retryable 503s and anything else as a bare 500.  Raw details
(tokens, ids, SQL) are logged server-side and never sent to the client.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from survey_flow.errors import SurveyError, TransientError

logger = logging.getLogger(__name__)


async def survey_error_handler(request: Request, exc: SurveyError) -> JSONResponse:
    """Render a ``SurveyError`` with its own status and payload."""
    if exc.status_code >= 500:
        logger.error("%s [%d] at %s: %s", type(exc).__name__, exc.status_code, request.url, exc)
    else:
        logger.warning("%s [%d] at %s: %s", type(exc).__name__, exc.status_code, request.url, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Storage failures are retryable from the client's point of view."""
    logger.error("Database error at %s: %s", request.url, exc)
    err = TransientError()
    return JSONResponse(status_code=err.status_code, content=err.to_payload())


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions — log full traceback, return 500."""
    logger.exception("Unhandled exception at %s", request.url)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )
