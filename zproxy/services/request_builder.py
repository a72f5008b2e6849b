"""Conversion of OpenAI chat requests into upstream requests."""

import time
from datetime import datetime
from typing import NamedTuple

import structlog

from zproxy.config.settings import Settings
from zproxy.core.errors import ValidationError
from zproxy.models.openai import OpenAIChatCompletionRequest
from zproxy.models.upstream import UpstreamModelItem, UpstreamRequest
from zproxy.tools.prompt import (
    content_to_string,
    process_messages_with_tools,
    tools_enabled,
)


logger = structlog.get_logger(__name__)

SEARCH_MCP_SERVER = "deep-web-search"
UPSTREAM_ROLES = frozenset({"system", "user", "assistant"})


class ModelFeatures(NamedTuple):
    upstream_id: str
    upstream_name: str
    enable_thinking: bool
    web_search: bool
    mcp_servers: list[str]


def generate_request_ids() -> tuple[str, str]:
    """Return ``(chat_id, message_id)`` derived from the current second."""
    timestamp = int(time.time())
    return f"{timestamp * 1000}-{timestamp}", str(timestamp * 1_000_000)


def resolve_model(requested: str, settings: Settings) -> ModelFeatures:
    """Map a public model name to the upstream model and its feature flags.

    Unknown names are served by the primary upstream model without extras.
    """
    models = settings.models
    is_search = requested == models.search_model

    if requested == models.air_model:
        upstream_id, upstream_name = models.air_upstream_id, models.air_model
    else:
        upstream_id, upstream_name = models.default_upstream_id, models.primary_model

    return ModelFeatures(
        upstream_id=upstream_id,
        upstream_name=upstream_name,
        enable_thinking=requested == models.thinking_model,
        web_search=is_search,
        mcp_servers=[SEARCH_MCP_SERVER] if is_search else [],
    )


def build_upstream_request(
    request: OpenAIChatCompletionRequest,
    settings: Settings,
    now: datetime | None = None,
) -> tuple[UpstreamRequest, str, bool]:
    """Build the upstream request for an OpenAI chat completion request.

    Returns:
        The upstream request, its chat id and whether tool mode is active
    """
    chat_id, message_id = generate_request_ids()
    tool_support = settings.translation.tool_support

    raw_messages = [
        message.model_dump(exclude_none=True) for message in request.messages
    ]
    processed = process_messages_with_tools(
        raw_messages,
        tools=request.tools,
        tool_choice=request.tool_choice,
        tool_support=tool_support,
    )

    messages = []
    for message in processed:
        role = message.get("role")
        if role not in UPSTREAM_ROLES:
            raise ValidationError(
                f"Unsupported message role: {role}", details={"role": role}
            )
        upstream_message = {
            "role": role,
            "content": content_to_string(message.get("content")),
        }
        if message.get("reasoning_content"):
            upstream_message["reasoning_content"] = message["reasoning_content"]
        messages.append(upstream_message)

    features = resolve_model(request.model, settings)
    now = now or datetime.now()

    upstream_request = UpstreamRequest(
        stream=True,
        chat_id=chat_id,
        id=message_id,
        model=features.upstream_id,
        messages=messages,
        params={},
        features={
            "enable_thinking": features.enable_thinking,
            "web_search": features.web_search,
            "auto_web_search": features.web_search,
        },
        background_tasks={"title_generation": False, "tags_generation": False},
        mcp_servers=features.mcp_servers,
        model_item=UpstreamModelItem(
            id=features.upstream_id, name=features.upstream_name
        ),
        tool_servers=[],
        variables={
            "{{USER_NAME}}": "User",
            "{{USER_LOCATION}}": "Unknown",
            "{{CURRENT_DATETIME}}": now.strftime("%Y-%m-%d %H:%M:%S"),
        },
    )

    has_tools = tools_enabled(request.tools, request.tool_choice, tool_support)

    logger.debug(
        "upstream_request_built",
        chat_id=chat_id,
        requested_model=request.model,
        upstream_model=features.upstream_id,
        messages=len(messages),
        has_tools=has_tools,
    )

    return upstream_request, chat_id, has_tools
