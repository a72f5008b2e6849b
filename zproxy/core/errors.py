"""Exception hierarchy for zproxy."""

from typing import Any


class ZProxyError(Exception):
    """Base exception for zproxy errors."""

    def __init__(
        self,
        message: str,
        error_type: str = "internal_server_error",
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.status_code = status_code
        self.details = details or {}


class ValidationError(ZProxyError):
    """Validation error (400)."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            message=message,
            error_type="invalid_request_error",
            status_code=400,
            details=details,
        )


class AuthenticationError(ZProxyError):
    """Authentication error (401)."""

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(
            message=message, error_type="authentication_error", status_code=401
        )


class UpstreamError(ZProxyError):
    """The upstream chat service failed or answered with an error (502)."""

    def __init__(
        self,
        message: str = "Upstream error",
        upstream_status: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_type="upstream_error",
            status_code=502,
            details=details,
        )
        self.upstream_status = upstream_status


class UpstreamTimeoutError(UpstreamError):
    """The upstream chat service did not answer in time (504)."""

    def __init__(self, message: str = "Upstream request timed out") -> None:
        super().__init__(message=message)
        self.error_type = "upstream_timeout_error"
        self.status_code = 504


__all__ = [
    "ZProxyError",
    "ValidationError",
    "AuthenticationError",
    "UpstreamError",
    "UpstreamTimeoutError",
]
