"""Authenticated access to the upstream chat service.

The upstream is a browser-facing web API: requests carry browser-like
headers, a bearer token (a guest token fetched per request in anonymous
mode) and an HMAC signature over the exact request body.
"""

import hashlib
import hmac
import json
import random
import secrets
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog

from zproxy.config.settings import Settings
from zproxy.core.errors import UpstreamError, UpstreamTimeoutError
from zproxy.models.upstream import UpstreamRequest


logger = structlog.get_logger(__name__)

ANONYMOUS_SIGNING_TOKEN = "anonymous"

_CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/139.0.0.0 Safari/537.36"
)
_EDGE_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/139.0.0.0 Safari/537.36 Edg/139.0.0.0"
)
_FIREFOX_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:109.0) Gecko/20100101 Firefox/121.0"
)
_SAFARI_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.1 Safari/605.1.15"
)

# Weighted towards Chromium browsers.
USER_AGENT_POOL = (
    _CHROME_UA,
    _CHROME_UA,
    _CHROME_UA,
    _EDGE_UA,
    _EDGE_UA,
    _FIREFOX_UA,
    _SAFARI_UA,
)


def generate_signature_headers(
    token: str, body: str = "", method: str = "POST"
) -> dict[str, str]:
    """Sign a request body for the upstream.

    The signature is the hex HMAC-SHA256 of ``METHOD\\ntimestamp\\nnonce\\nbody``
    keyed with ``token``; the timestamp is in milliseconds and the nonce is
    16 hex characters.
    """
    timestamp = str(int(time.time() * 1000))
    nonce = secrets.token_hex(8)
    message = f"{method}\n{timestamp}\n{nonce}\n{body}"
    signature = hmac.new(
        token.encode("utf-8"), message.encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return {
        "X-Timestamp": timestamp,
        "X-Nonce": nonce,
        "X-Signature": signature,
    }


def _sec_ch_ua(user_agent: str) -> str | None:
    chrome_version = "139"
    if "Chrome/" in user_agent:
        chrome_version = user_agent.split("Chrome/", 1)[1].split(".", 1)[0]

    if "Edg/" in user_agent:
        edge_version = user_agent.split("Edg/", 1)[1].split(".", 1)[0]
        return (
            f'"Microsoft Edge";v="{edge_version}", '
            f'"Chromium";v="{chrome_version}", "Not_A Brand";v="24"'
        )
    if "Firefox/" in user_agent:
        return None
    return (
        f'"Not_A Brand";v="8", "Chromium";v="{chrome_version}", '
        f'"Google Chrome";v="{chrome_version}"'
    )


def get_browser_headers(
    settings: Settings,
    referer_chat_id: str = "",
    user_agent: str | None = None,
) -> dict[str, str]:
    """Build the browser-like header set the upstream web API expects."""
    user_agent = user_agent or random.choice(USER_AGENT_POOL)
    origin = settings.upstream.origin

    headers = {
        "Content-Type": "application/json",
        "Accept": "application/json, text/event-stream",
        "User-Agent": user_agent,
        "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8,en-US;q=0.7",
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": '"Windows"',
        "sec-fetch-dest": "empty",
        "sec-fetch-mode": "cors",
        "sec-fetch-site": "same-origin",
        "X-FE-Version": settings.upstream.fe_version,
        "Origin": origin,
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
    }

    sec_ch_ua = _sec_ch_ua(user_agent)
    if sec_ch_ua:
        headers["sec-ch-ua"] = sec_ch_ua

    if referer_chat_id:
        headers["Referer"] = f"{origin}/c/{referer_chat_id}"

    return headers


def serialize_request_body(upstream_request: UpstreamRequest) -> str:
    """Serialize the request exactly once; the signature covers these bytes."""
    return json.dumps(
        upstream_request.model_dump(exclude_none=True),
        ensure_ascii=False,
        separators=(",", ":"),
    )


class UpstreamClient:
    """Calls the upstream chat API through a shared ``httpx.AsyncClient``."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient) -> None:
        self.settings = settings
        self.http_client = http_client

    async def fetch_anonymous_token(self) -> str:
        """Request a guest token from ``<origin>/api/v1/auths/``."""
        upstream = self.settings.upstream
        headers = get_browser_headers(self.settings)
        headers["Accept"] = "*/*"
        headers["Accept-Language"] = "zh-CN,zh;q=0.9"
        headers["Referer"] = f"{upstream.origin}/"
        headers.update(
            generate_signature_headers(ANONYMOUS_SIGNING_TOKEN, "", "GET")
        )

        response = await self.http_client.get(
            f"{upstream.origin}/api/v1/auths/",
            headers=headers,
            timeout=upstream.token_timeout,
        )
        if not response.is_success:
            raise UpstreamError(
                f"Anonymous token request failed with status {response.status_code}",
                upstream_status=response.status_code,
            )

        data: Any = response.json()
        token = data.get("token") if isinstance(data, dict) else None
        if not token or not isinstance(token, str):
            raise UpstreamError("Anonymous token response carried no token")
        return token

    async def get_auth_token(self) -> str:
        """Return the token for the next upstream call.

        In anonymous mode a guest token is fetched; any failure falls back to
        the configured backup token.
        """
        upstream = self.settings.upstream
        if upstream.anonymous_mode:
            try:
                token = await self.fetch_anonymous_token()
                logger.debug("anonymous_token_acquired", token_prefix=token[:10])
                return token
            except (httpx.HTTPError, UpstreamError, ValueError) as e:
                logger.warning("anonymous_token_failed_using_backup", error=str(e))

        return upstream.backup_token.get_secret_value()

    @asynccontextmanager
    async def stream(
        self, upstream_request: UpstreamRequest, chat_id: str, token: str
    ) -> AsyncIterator[httpx.Response]:
        """Open a streaming upstream request and yield the response.

        The response is closed when the context exits.

        Raises:
            UpstreamTimeoutError: The upstream did not answer in time
            UpstreamError: Transport failure or a non-2xx status
        """
        upstream = self.settings.upstream
        body = serialize_request_body(upstream_request)

        headers = get_browser_headers(self.settings, referer_chat_id=chat_id)
        headers["Authorization"] = f"Bearer {token}"
        headers.update(generate_signature_headers(token, body, "POST"))

        request = self.http_client.build_request(
            "POST",
            upstream.api_endpoint,
            headers=headers,
            content=body.encode("utf-8"),
            timeout=upstream.timeout,
        )

        logger.debug(
            "upstream_request_sending",
            endpoint=upstream.api_endpoint,
            chat_id=chat_id,
            model=upstream_request.model,
            body_size=len(body),
        )

        try:
            response = await self.http_client.send(request, stream=True)
        except httpx.TimeoutException as e:
            logger.error("upstream_timeout", endpoint=upstream.api_endpoint)
            raise UpstreamTimeoutError() from e
        except httpx.HTTPError as e:
            logger.error(
                "upstream_request_failed", endpoint=upstream.api_endpoint, error=str(e)
            )
            raise UpstreamError(f"Failed to call upstream: {e}") from e

        try:
            logger.debug("upstream_response_status", status_code=response.status_code)
            if not response.is_success:
                error_body = (await response.aread()).decode("utf-8", errors="replace")
                logger.error(
                    "upstream_http_error",
                    status_code=response.status_code,
                    body=error_body[:1000],
                )
                raise UpstreamError(
                    "Upstream error",
                    upstream_status=response.status_code,
                    details={"status_code": response.status_code},
                )
            yield response
        finally:
            await response.aclose()
