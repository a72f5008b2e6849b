"""Error handling for the zproxy API server.

Every error leaves the server as an OpenAI error body:
``{"error": {"message": ..., "type": ..., "code": ...}}``.
"""

from collections.abc import Awaitable, Callable

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from structlog import get_logger

from zproxy.core.errors import (
    AuthenticationError,
    UpstreamError,
    UpstreamTimeoutError,
    ValidationError,
    ZProxyError,
)
from zproxy.models.openai import OpenAIErrorResponse


logger = get_logger(__name__)


def error_response(
    status_code: int, message: str, error_type: str, code: str | int | None = None
) -> JSONResponse:
    """Build an OpenAI-style error response."""
    body = OpenAIErrorResponse.create(
        message=message, error_type=error_type, code=code or status_code
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


def setup_error_handlers(app: FastAPI) -> None:
    """Setup error handlers for the FastAPI application.

    Args:
        app: FastAPI application instance
    """
    logger.debug("error_handlers_setup_start")

    # Subclasses registered after their base win for their own type.
    error_classes: tuple[type[ZProxyError], ...] = (
        ZProxyError,
        ValidationError,
        AuthenticationError,
        UpstreamError,
        UpstreamTimeoutError,
    )

    async def unified_error_handler(request: Request, exc: Exception) -> JSONResponse:
        status_code = getattr(exc, "status_code", 500)
        error_type = getattr(exc, "error_type", "internal_server_error")
        message = getattr(exc, "message", str(exc))

        log_kwargs = {
            "error_type": error_type,
            "error_message": message,
            "status_code": status_code,
            "request_method": request.method,
            "request_url": str(request.url.path),
        }
        if isinstance(exc, AuthenticationError):
            if request.client:
                log_kwargs["client_ip"] = request.client.host
            logger.warning("authentication_failed", **log_kwargs)
        else:
            logger.error("request_failed", **log_kwargs)

        return error_response(status_code, message, error_type)

    def make_handler() -> Callable[[Request, Exception], Awaitable[JSONResponse]]:
        async def handler(request: Request, exc: Exception) -> JSONResponse:
            return await unified_error_handler(request, exc)

        return handler

    for exc_class in error_classes:
        app.exception_handler(exc_class)(make_handler())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Report invalid request bodies as 400 invalid_request_error."""
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid request")
        if location:
            message = f"{location}: {message}"

        logger.warning(
            "request_validation_failed",
            error_count=len(errors),
            error_message=message,
            request_url=str(request.url.path),
        )
        return error_response(400, message, "invalid_request_error")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        """Handle HTTP exceptions."""
        log_func = logger.debug if exc.status_code == 404 else logger.warning
        log_func(
            "http_error",
            error_message=exc.detail,
            status_code=exc.status_code,
            request_method=request.method,
            request_url=str(request.url.path),
        )
        return error_response(exc.status_code, str(exc.detail), "http_error")

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle all other unhandled exceptions."""
        logger.error(
            "unhandled_exception",
            error_message=str(exc),
            status_code=500,
            request_method=request.method,
            request_url=str(request.url.path),
            exc_info=True,
        )
        return error_response(
            500, "An internal server error occurred", "internal_server_error"
        )

    logger.debug("error_handlers_setup_completed")
