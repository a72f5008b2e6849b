"""Non-streaming response assembly."""

import time
from contextlib import aclosing

import structlog

from zproxy.models.openai import (
    OpenAIChatCompletionResponse,
    OpenAIChoice,
    OpenAIResponseMessage,
    OpenAIUsage,
)
from zproxy.streaming.sse import SSEDecoder
from zproxy.tools.extraction import (
    DEFAULT_SCAN_LIMIT,
    extract_tool_invocations,
    strip_tool_json,
)

from .stream_handler import generate_completion_id
from .translator import PhaseTranslator, Terminal, TerminalReason


logger = structlog.get_logger(__name__)


class FullResponseHandler:
    """Collect a whole upstream answer into one ``chat.completion`` object.

    Thinking text is transformed and kept inline with the answer. In tool
    mode the collected text is searched for tool calls; when found, the
    message carries them with ``content`` set to ``None``.
    """

    def __init__(
        self,
        decoder: SSEDecoder,
        *,
        model: str,
        tool_mode: bool = False,
        thinking_mode: str = "think",
        scan_limit: int = DEFAULT_SCAN_LIMIT,
        message_id: str | None = None,
        created: int | None = None,
    ) -> None:
        self.decoder = decoder
        self.model = model
        self.tool_mode = tool_mode
        self.scan_limit = scan_limit
        self.message_id = message_id or generate_completion_id()
        self.created = created if created is not None else int(time.time())
        self.translator = PhaseTranslator(
            thinking_mode=thinking_mode, incremental=False
        )

    async def collect_text(self) -> str:
        """Read the upstream stream up to its terminal frame and join the text."""
        parts: list[str] = []
        try:
            async with self.decoder, aclosing(self.decoder.iter_events()) as events:
                async for event in events:
                    for item in self.translator.feed_event(event):
                        if isinstance(item, Terminal):
                            if item.reason is TerminalReason.ERROR:
                                logger.warning(
                                    "upstream_error_during_collect",
                                    message_id=self.message_id,
                                    collected=len(parts),
                                )
                            continue
                        parts.append(item.text)
                    if self.translator.state.stream_ended:
                        break
        except Exception as e:
            logger.error(
                "upstream_read_failed",
                message_id=self.message_id,
                error=str(e),
                collected=len(parts),
                exc_info=True,
            )
            self.translator.terminate(TerminalReason.TRANSPORT_ERROR)
            return "".join(parts)

        self.translator.terminate(TerminalReason.EOF)
        return "".join(parts)

    async def collect(self) -> OpenAIChatCompletionResponse:
        """Build the complete response."""
        full_content = await self.collect_text()

        content: str | None = full_content
        tool_calls = None
        finish_reason = "stop"

        if self.tool_mode:
            tool_calls = extract_tool_invocations(full_content, self.scan_limit)
            if tool_calls:
                content = None
                finish_reason = "tool_calls"
                self.translator.state.extracted_tools = tool_calls
            else:
                content = strip_tool_json(full_content, self.scan_limit) or full_content

        usage = OpenAIUsage()
        if self.translator.usage is not None:
            usage = OpenAIUsage(**self.translator.usage.model_dump())

        logger.info(
            "full_response_completed",
            message_id=self.message_id,
            content_length=len(full_content),
            tool_calls=len(tool_calls) if tool_calls else 0,
            finish_reason=finish_reason,
        )

        return OpenAIChatCompletionResponse(
            id=self.message_id,
            created=self.created,
            model=self.model,
            choices=[
                OpenAIChoice(
                    index=0,
                    message=OpenAIResponseMessage(
                        content=content,
                        tool_calls=[dict(call) for call in tool_calls]
                        if tool_calls
                        else None,
                    ),
                    finish_reason=finish_reason,
                )
            ],
            usage=usage,
        )
