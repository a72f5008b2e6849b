"""Phase-driven translation of upstream frames into OpenAI deltas.

The upstream tags every frame with a generation phase (``thinking``,
``answer``, ``done``) and carries text either as an incremental
``delta_content`` or as an ``edit_content`` snapshot. ``PhaseTranslator``
consumes frames one at a time and turns them into ``ReasoningDelta``,
``ContentDelta`` and ``Terminal`` events; the stream and full-response
handlers decide how those are put on the wire.
"""

from dataclasses import dataclass
from enum import Enum

import structlog
from pydantic import ValidationError

from zproxy.models.upstream import Phase, UpstreamError, UpstreamFrame, UpstreamUsage
from zproxy.streaming.sse import EventKind, RawEvent
from zproxy.streaming.thinking import transform_thinking_content
from zproxy.tools.extraction import ToolInvocation


logger = structlog.get_logger(__name__)

DETAILS_CLOSE_MARKER = "</details>"


class StreamStatus(str, Enum):
    """Lifecycle of one translated response. ``ENDED`` is final."""

    ACTIVE = "active"
    ENDED = "ended"


class TerminalReason(str, Enum):
    DONE = "done"
    ERROR = "error"
    EOF = "eof"
    TRANSPORT_ERROR = "transport_error"


@dataclass
class TranslationState:
    """Mutable state of a single in-flight response."""

    tool_buffer: str = ""
    sent_initial_answer: bool = False
    status: StreamStatus = StreamStatus.ACTIVE
    extracted_tools: list[ToolInvocation] | None = None

    @property
    def stream_ended(self) -> bool:
        return self.status is StreamStatus.ENDED

    def end(self) -> bool:
        """Move to ``ENDED``. Returns False if the response had already ended."""
        if self.status is StreamStatus.ENDED:
            return False
        self.status = StreamStatus.ENDED
        return True


@dataclass(frozen=True)
class ReasoningDelta:
    text: str


@dataclass(frozen=True)
class ContentDelta:
    text: str


@dataclass(frozen=True)
class Terminal:
    reason: TerminalReason
    error: UpstreamError | None = None


TranslationEvent = ReasoningDelta | ContentDelta | Terminal


def extract_edit_content(edit_content: str) -> str:
    """Return the answer text that follows the first ``</details>`` marker."""
    _, marker, answer = edit_content.partition(DETAILS_CLOSE_MARKER)
    return answer if marker else ""


class PhaseTranslator:
    """Turns upstream frames into translation events for one response.

    Args:
        tool_mode: Buffer all text in ``state.tool_buffer`` instead of emitting
            deltas, so tool-call JSON can be extracted once the answer is complete
        thinking_mode: Display mode passed to ``transform_thinking_content``
        incremental: When False, only ``delta_content`` is used and neither the
            initial-answer snapshot nor tool buffering applies; used when the
            whole answer is collected before responding
    """

    def __init__(
        self,
        tool_mode: bool = False,
        thinking_mode: str = "think",
        incremental: bool = True,
        state: TranslationState | None = None,
    ) -> None:
        self.tool_mode = tool_mode and incremental
        self.thinking_mode = thinking_mode
        self.incremental = incremental
        self.state = state or TranslationState()
        self.usage: UpstreamUsage | None = None
        self.frame_count = 0

    def feed_event(self, event: RawEvent) -> list[TranslationEvent]:
        """Translate a decoded SSE event; non-JSON and non-data events are skipped."""
        if self.state.stream_ended:
            return []
        if event.kind is not EventKind.DATA or not event.is_json:
            return []
        try:
            frame = UpstreamFrame.model_validate(event.parsed_json)
        except ValidationError as e:
            logger.debug(
                "upstream_frame_invalid",
                error_count=e.error_count(),
                raw=event.raw_value[:200],
            )
            return []
        return self.feed(frame)

    def feed(self, frame: UpstreamFrame) -> list[TranslationEvent]:
        """Translate one upstream frame."""
        if self.state.stream_ended:
            return []

        self.frame_count += 1
        error = frame.get_error()
        if error is not None:
            logger.warning(
                "upstream_error_frame",
                code=error.code,
                detail=error.detail,
                frame=self.frame_count,
            )
            self.state.end()
            return [Terminal(reason=TerminalReason.ERROR, error=error)]

        data = frame.data
        logger.debug(
            "upstream_frame",
            type=frame.type,
            phase=data.phase.value,
            delta_length=len(data.delta_content),
            done=data.done,
        )

        if data.usage is not None:
            self.usage = data.usage

        if self.incremental:
            events = self._translate_incremental(frame)
        else:
            events = self._translate_collected(frame)

        if frame.is_terminal:
            logger.debug("upstream_done", frame=self.frame_count)
            self.state.end()
            events.append(Terminal(reason=TerminalReason.DONE))

        return events

    def terminate(self, reason: TerminalReason) -> Terminal | None:
        """End the response without a terminal frame (EOF, transport failure).

        Returns ``None`` when the response has already ended.
        """
        if not self.state.end():
            return None
        return Terminal(reason=reason)

    def _transform(self, text: str, phase: Phase) -> str:
        if phase is Phase.THINKING:
            return transform_thinking_content(text, self.thinking_mode)
        return text

    def _translate_incremental(self, frame: UpstreamFrame) -> list[TranslationEvent]:
        data = frame.data
        content = data.delta_content or data.edit_content
        if not content:
            return []

        processed = self._transform(content, data.phase)

        if self.tool_mode:
            self.state.tool_buffer += processed
            return []

        events: list[TranslationEvent] = []
        if (
            not self.state.sent_initial_answer
            and data.edit_content
            and data.phase is Phase.ANSWER
        ):
            initial = extract_edit_content(data.edit_content)
            if initial:
                events.append(ContentDelta(initial))
                self.state.sent_initial_answer = True

        if data.delta_content and processed:
            if data.phase is Phase.THINKING:
                events.append(ReasoningDelta(processed))
            else:
                events.append(ContentDelta(processed))

        return events

    def _translate_collected(self, frame: UpstreamFrame) -> list[TranslationEvent]:
        data = frame.data
        if not data.delta_content:
            return []
        processed = self._transform(data.delta_content, data.phase)
        if not processed:
            return []
        if data.phase is Phase.THINKING:
            return [ReasoningDelta(processed)]
        return [ContentDelta(processed)]
