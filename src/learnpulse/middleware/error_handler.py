"""Exception handlers: every error leaves the API as `{"detail": ...}` JSON."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from learnpulse.errors import LearnpulseError, ProgressConflictError, ReportJobNotFoundError, SessionConflictError

logger = structlog.get_logger()


def setup_error_handlers(app: FastAPI) -> None:
    """Register exception handlers on the app."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": exc.errors()},
        )

    @app.exception_handler(ProgressConflictError)
    @app.exception_handler(SessionConflictError)
    async def conflict_handler(request: Request, exc: LearnpulseError) -> JSONResponse:
        """Concurrent-write conflicts the client may simply retry."""
        logger.warning("write_conflict", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=409,
            content={"detail": str(exc), "retryable": True},
        )

    @app.exception_handler(ReportJobNotFoundError)
    async def report_not_found_handler(_request: Request, _exc: ReportJobNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": "Report job not found"})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Anything unhandled becomes a logged 500."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )
