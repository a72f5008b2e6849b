"""Streaming response assembly.

``StreamResponseHandler`` pulls events from an ``SSEDecoder``, runs them
through a ``PhaseTranslator`` and yields OpenAI SSE chunks. Every response
ends with exactly one final chunk followed by ``data: [DONE]``, whether the
upstream finished normally, reported an error, closed early or failed in
transport. A cancelled consumer gets nothing further.
"""

import asyncio
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import aclosing
from enum import Enum

import structlog

from zproxy.streaming.sse import SSEDecoder
from zproxy.tools.extraction import (
    DEFAULT_SCAN_LIMIT,
    extract_tool_invocations,
    strip_tool_json,
)

from .openai_streaming_formatter import OpenAIStreamingFormatter
from .translator import (
    ContentDelta,
    PhaseTranslator,
    ReasoningDelta,
    Terminal,
    TerminalReason,
    TranslationEvent,
)


logger = structlog.get_logger(__name__)


class StreamPhase(str, Enum):
    """Output state of a streamed response."""

    INIT = "init"
    ROLE_SENT = "role_sent"
    STREAMING = "streaming"
    ENDED = "ended"


def generate_completion_id() -> str:
    return f"chatcmpl-{uuid.uuid4().hex[:29]}"


class StreamResponseHandler:
    """Translate one upstream event stream into OpenAI streaming chunks.

    Args:
        decoder: Decoder over the upstream response body; released when the
            stream ends or is cancelled
        model: Model name echoed in every chunk
        tool_mode: Buffer the answer and emit extracted tool calls at the end
        thinking_mode: How thinking text is rendered (``think``, ``strip``, ``raw``)
        scan_limit: Characters of the buffered answer examined for tool calls
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
        self.scan_limit = scan_limit
        self.message_id = message_id or generate_completion_id()
        self.created = created if created is not None else int(time.time())
        self.translator = PhaseTranslator(
            tool_mode=tool_mode, thinking_mode=thinking_mode
        )
        self.phase = StreamPhase.INIT
        self.finish_reason: str | None = None
        self.chunks_sent = 0

    async def stream(self) -> AsyncIterator[str]:
        """Yield SSE-framed chunks until the response has ended."""
        try:
            self.phase = StreamPhase.ROLE_SENT
            yield self._count(
                OpenAIStreamingFormatter.format_first_chunk(
                    self.message_id, self.model, self.created
                )
            )

            async with aclosing(self.decoder.iter_events()) as events:
                async for event in events:
                    if self.phase is StreamPhase.ROLE_SENT:
                        self.phase = StreamPhase.STREAMING
                    for item in self.translator.feed_event(event):
                        for chunk in self._render(item):
                            yield chunk
                    if self.phase is StreamPhase.ENDED:
                        break

            terminal = self.translator.terminate(TerminalReason.EOF)
            if terminal is not None:
                logger.warning(
                    "upstream_stream_ended_without_done",
                    message_id=self.message_id,
                    frames=self.translator.frame_count,
                )
                for chunk in self._render(terminal):
                    yield chunk

        except (asyncio.CancelledError, GeneratorExit):
            logger.info(
                "stream_cancelled",
                message_id=self.message_id,
                chunks_sent=self.chunks_sent,
            )
            self.translator.state.end()
            self.phase = StreamPhase.ENDED
            raise

        except Exception as e:
            logger.error(
                "stream_translation_failed",
                message_id=self.message_id,
                error=str(e),
                exc_info=True,
            )
            if self.phase is not StreamPhase.ENDED:
                self.translator.terminate(TerminalReason.TRANSPORT_ERROR)
                for chunk in self._finish("stop"):
                    yield chunk

        finally:
            await self.decoder.aclose()

    def _count(self, chunk: str) -> str:
        self.chunks_sent += 1
        return chunk

    def _render(self, item: TranslationEvent) -> list[str]:
        if isinstance(item, ReasoningDelta):
            return [
                self._count(
                    OpenAIStreamingFormatter.format_reasoning_chunk(
                        self.message_id, self.model, self.created, item.text
                    )
                )
            ]
        if isinstance(item, ContentDelta):
            return [
                self._count(
                    OpenAIStreamingFormatter.format_content_chunk(
                        self.message_id, self.model, self.created, item.text
                    )
                )
            ]
        return self._terminal_chunks(item)

    def _terminal_chunks(self, terminal: Terminal) -> list[str]:
        if terminal.reason in (TerminalReason.ERROR, TerminalReason.TRANSPORT_ERROR):
            # Failures close the stream like a normal answer.
            return self._finish("stop")

        chunks: list[str] = []
        finish_reason = "stop"
        if self.translator.tool_mode:
            chunks, finish_reason = self._flush_tool_buffer()
        return chunks + self._finish(finish_reason)

    def _flush_tool_buffer(self) -> tuple[list[str], str]:
        state = self.translator.state
        tool_calls = extract_tool_invocations(state.tool_buffer, self.scan_limit)
        if tool_calls:
            state.extracted_tools = tool_calls
            chunks = [
                self._count(
                    OpenAIStreamingFormatter.format_tool_call_chunk(
                        self.message_id,
                        self.model,
                        self.created,
                        tool_call,
                        tool_call_index=index,
                    )
                )
                for index, tool_call in enumerate(tool_calls)
            ]
            return chunks, "tool_calls"

        residual = strip_tool_json(state.tool_buffer, self.scan_limit)
        if not residual:
            return [], "stop"
        return [
            self._count(
                OpenAIStreamingFormatter.format_content_chunk(
                    self.message_id, self.model, self.created, residual
                )
            )
        ], "stop"

    def _finish(self, finish_reason: str) -> list[str]:
        self.phase = StreamPhase.ENDED
        self.finish_reason = finish_reason
        chunks = [
            self._count(
                OpenAIStreamingFormatter.format_final_chunk(
                    self.message_id, self.model, self.created, finish_reason
                )
            ),
            self._count(OpenAIStreamingFormatter.format_done()),
        ]
        logger.info(
            "stream_completed",
            message_id=self.message_id,
            finish_reason=finish_reason,
            chunks_sent=self.chunks_sent,
        )
        return chunks
