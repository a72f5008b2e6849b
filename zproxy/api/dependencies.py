"""Shared dependencies for the zproxy API server."""

import hmac
from typing import Annotated

import httpx
from fastapi import Depends, Request
from structlog import get_logger

from zproxy.config.settings import Settings, get_settings
from zproxy.core.errors import AuthenticationError
from zproxy.services.upstream_client import UpstreamClient


logger = get_logger(__name__)


def get_cached_settings(request: Request) -> Settings:
    """Get the settings the app was created with."""
    settings: Settings | None = getattr(request.app.state, "settings", None)
    return settings if settings is not None else get_settings()


SettingsDep = Annotated[Settings, Depends(get_cached_settings)]


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Get the shared HTTP client opened by the application lifespan."""
    client: httpx.AsyncClient = request.app.state.http_client
    return client


def get_upstream_client(
    settings: SettingsDep,
    http_client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
) -> UpstreamClient:
    return UpstreamClient(settings, http_client)


UpstreamClientDep = Annotated[UpstreamClient, Depends(get_upstream_client)]


def verify_api_key(request: Request, settings: SettingsDep) -> None:
    """Require ``Authorization: Bearer <auth_token>`` unless checks are skipped."""
    if settings.security.skip_auth_token:
        return

    authorization = request.headers.get("authorization", "")
    if not authorization.startswith("Bearer "):
        raise AuthenticationError("Missing or invalid Authorization header")

    api_key = authorization[len("Bearer ") :]
    expected = settings.security.auth_token.get_secret_value()
    if not hmac.compare_digest(api_key.encode("utf-8"), expected.encode("utf-8")):
        raise AuthenticationError("Invalid API key")

    logger.debug("api_key_verified", key_prefix=api_key[:8])
