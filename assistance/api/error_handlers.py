"""Global exception handlers: classified errors to HTTP responses.

- AssistanceError -> its own status and code
- RequestValidationError -> 400 with field details
- anything else -> 500, with no internal detail in the body
"""

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from assistance.core.errors import AssistanceError, ErrorCategory

log = structlog.get_logger()


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""

    @app.exception_handler(AssistanceError)
    async def assistance_error_handler(request: Request, exc: AssistanceError):
        if exc.category == ErrorCategory.INFRASTRUCTURE:
            log.error("request.failed", path=request.url.path, code=exc.code, error=exc.message)
        else:
            log.info("request.rejected", path=request.url.path, code=exc.code)
        return JSONResponse(status_code=exc.http_status, content=exc.to_response())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        log.info("request.invalid", path=request.url.path)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": {
                    "code": "BAD_REQUEST",
                    "message": "Request validation failed",
                    "category": ErrorCategory.VALIDATION.value,
                    "fields": [
                        {"loc": list(e.get("loc", ())), "msg": e.get("msg", "")}
                        for e in exc.errors()
                    ],
                }
            },
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        log.error("request.unhandled", path=request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                    "category": ErrorCategory.INFRASTRUCTURE.value,
                }
            },
        )
