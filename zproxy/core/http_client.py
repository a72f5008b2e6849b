"""Shared HTTP client management for zproxy.

One ``httpx.AsyncClient`` is created per process and reused for every
upstream call; streaming requests rely on its long read timeout.
"""

import os
from pathlib import Path
from typing import Any

import httpx
import structlog

from zproxy.config.settings import Settings


logger = structlog.get_logger(__name__)


class HTTPClientFactory:
    """Factory for creating HTTP clients with consistent configuration."""

    @staticmethod
    def create_client(
        *,
        settings: Settings | None = None,
        timeout_connect: float = 10.0,
        timeout_read: float | None = None,
        max_keepalive_connections: int = 50,
        max_connections: int = 500,
        verify: bool | str = True,
        **kwargs: Any,
    ) -> httpx.AsyncClient:
        """Create an HTTP client.

        Args:
            settings: Optional settings; the upstream timeout becomes the read timeout
            timeout_connect: Connection timeout in seconds
            timeout_read: Read timeout in seconds, defaults to the upstream timeout
            max_keepalive_connections: Max keep-alive connections for reuse
            max_connections: Max total concurrent connections
            verify: SSL verification (True/False or path to CA bundle)
            **kwargs: Additional httpx.AsyncClient arguments

        Returns:
            Configured httpx.AsyncClient instance
        """
        proxy = _get_proxy_url()

        if isinstance(verify, bool) and verify:
            verify = _get_ssl_context()

        if timeout_read is None:
            timeout_read = settings.upstream.timeout if settings else 60.0

        timeout = httpx.Timeout(
            connect=timeout_connect,
            read=timeout_read,
            write=30.0,
            pool=30.0,
        )

        limits = httpx.Limits(
            max_keepalive_connections=max_keepalive_connections,
            max_connections=max_connections,
        )

        transport = httpx.AsyncHTTPTransport(
            limits=limits,
            verify=verify,
            proxy=proxy,
        )

        client_config = {
            "timeout": timeout,
            "transport": transport,
            **kwargs,
        }

        logger.info(
            "http_client_created",
            timeout_connect=timeout_connect,
            timeout_read=timeout_read,
            max_connections=max_connections,
            has_proxy=proxy is not None,
        )

        return httpx.AsyncClient(**client_config)


def _get_proxy_url() -> str | None:
    """Get proxy URL from environment variables.

    Returns:
        str or None: Proxy URL if any proxy is set
    """
    https_proxy = os.environ.get("HTTPS_PROXY") or os.environ.get("https_proxy")
    all_proxy = os.environ.get("ALL_PROXY")
    http_proxy = os.environ.get("HTTP_PROXY") or os.environ.get("http_proxy")

    proxy_url = https_proxy or all_proxy or http_proxy

    if proxy_url:
        logger.debug("proxy_configured", proxy_url=proxy_url)

    return proxy_url


def _get_ssl_context() -> str | bool:
    """Get SSL verification configuration from environment variables."""
    ca_bundle = os.environ.get("REQUESTS_CA_BUNDLE") or os.environ.get("SSL_CERT_FILE")
    ssl_verify = os.environ.get("SSL_VERIFY", "true").lower()

    if ca_bundle and Path(ca_bundle).exists():
        logger.info("ssl_ca_bundle_configured", ca_bundle_path=ca_bundle)
        return ca_bundle
    elif ssl_verify in ("false", "0", "no"):
        logger.warning(
            "ssl_verification_disabled",
            ssl_verify_value=ssl_verify,
            security_warning=True,
        )
        return False
    else:
        return True


_shared_client: httpx.AsyncClient | None = None


async def get_shared_http_client(settings: Settings | None = None) -> httpx.AsyncClient:
    """Get the shared HTTP client instance, creating it on first access."""
    global _shared_client

    if _shared_client is None:
        _shared_client = HTTPClientFactory.create_client(settings=settings)
        logger.info("shared_http_client_created")

    return _shared_client


async def close_shared_http_client() -> None:
    """Close the shared HTTP client and reset the singleton."""
    global _shared_client

    if _shared_client is not None:
        await _shared_client.aclose()
        _shared_client = None
        logger.info("shared_http_client_closed")
