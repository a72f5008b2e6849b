"""OpenAI-compatible endpoints: model listing and chat completions."""

import time
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from structlog import get_logger

from zproxy.api.dependencies import SettingsDep, UpstreamClientDep, verify_api_key
from zproxy.core.errors import ZProxyError
from zproxy.models.openai import (
    OpenAIChatCompletionRequest,
    OpenAIChatCompletionResponse,
    OpenAIModelInfo,
    OpenAIModelsResponse,
)
from zproxy.services.full_response import FullResponseHandler
from zproxy.services.openai_streaming_formatter import OpenAIStreamingFormatter
from zproxy.services.request_builder import build_upstream_request
from zproxy.services.stream_handler import StreamResponseHandler
from zproxy.streaming.sse import SSEDecoder


logger = get_logger(__name__)
router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.get("/models", response_model=OpenAIModelsResponse)
async def list_models(settings: SettingsDep) -> OpenAIModelsResponse:
    """List the models this proxy serves."""
    created = int(time.time())
    return OpenAIModelsResponse(
        data=[
            OpenAIModelInfo(id=model, created=created, owned_by=settings.models.owned_by)
            for model in settings.models.public_models
        ]
    )


@router.post(
    "/chat/completions",
    response_model=None,
    dependencies=[Depends(verify_api_key)],
)
async def create_chat_completion(
    request: OpenAIChatCompletionRequest,
    settings: SettingsDep,
    upstream: UpstreamClientDep,
) -> OpenAIChatCompletionResponse | StreamingResponse:
    """
    Create a chat completion using OpenAI-compatible format.

    The upstream is always called in streaming mode; non-streaming requests
    are answered once the whole upstream stream has been collected.
    """
    logger.info(
        "chat_completion_request",
        model=request.model,
        stream=request.stream,
        messages=len(request.messages),
        tools=len(request.tools or []),
    )

    upstream_request, chat_id, has_tools = build_upstream_request(request, settings)
    token = await upstream.get_auth_token()
    translation = settings.translation

    if request.stream:

        async def generate_stream() -> AsyncIterator[str]:
            try:
                async with upstream.stream(upstream_request, chat_id, token) as response:
                    handler = StreamResponseHandler(
                        SSEDecoder.from_response(response),
                        model=request.model,
                        tool_mode=has_tools,
                        thinking_mode=translation.thinking_mode,
                        scan_limit=translation.scan_limit,
                    )
                    async for chunk in handler.stream():
                        yield chunk
            except ZProxyError as e:
                logger.error(
                    "chat_completion_stream_failed",
                    chat_id=chat_id,
                    error_type=e.error_type,
                    error=e.message,
                )
                yield OpenAIStreamingFormatter.format_error_event(e.error_type, e.message)
                yield OpenAIStreamingFormatter.format_done()

        return StreamingResponse(
            generate_stream(),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    async with upstream.stream(upstream_request, chat_id, token) as response:
        handler = FullResponseHandler(
            SSEDecoder.from_response(response),
            model=request.model,
            tool_mode=has_tools,
            thinking_mode=translation.thinking_mode,
            scan_limit=translation.scan_limit,
        )
        return await handler.collect()
