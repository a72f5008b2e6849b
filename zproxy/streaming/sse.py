"""Incremental decoder for server-sent-event byte streams.

The decoder turns an async byte iterator into ``RawEvent`` values, one per
``field: value`` line. Bytes may arrive split at any offset, including in the
middle of a line or of a multi-byte UTF-8 character; only complete lines are
interpreted. Iteration is pull-based: nothing is read from the source until
the consumer asks for the next event.
"""

import codecs
import json
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from types import TracebackType
from typing import Any

import httpx
import structlog


logger = structlog.get_logger(__name__)


class EventKind(str, Enum):
    """SSE field kinds that produce events."""

    DATA = "data"
    EVENT = "event"
    ID = "id"
    RETRY = "retry"


@dataclass(frozen=True)
class RawEvent:
    """One decoded SSE field line."""

    kind: EventKind
    raw_value: str
    parsed_json: Any = None
    is_json: bool = False
    retry: int | None = None


def parse_line(line: str) -> RawEvent | None:
    """Classify a single complete SSE line.

    Returns ``None`` for blank lines, comments, lines without a colon, unknown
    fields and ``retry`` values that are not integers.
    """
    if line.endswith("\r"):
        line = line[:-1]

    if not line.strip() or line.startswith(":"):
        return None

    field, sep, value = line.partition(":")
    if not sep:
        return None
    if value.startswith(" "):
        value = value[1:]

    if field == EventKind.DATA.value:
        try:
            parsed = json.loads(value)
        except ValueError:
            return RawEvent(kind=EventKind.DATA, raw_value=value, parsed_json=None)
        return RawEvent(
            kind=EventKind.DATA, raw_value=value, parsed_json=parsed, is_json=True
        )

    if field == EventKind.EVENT.value:
        return RawEvent(kind=EventKind.EVENT, raw_value=value)

    if field == EventKind.ID.value:
        return RawEvent(kind=EventKind.ID, raw_value=value)

    if field == EventKind.RETRY.value:
        try:
            retry = int(value)
        except ValueError:
            logger.debug("sse_invalid_retry", value=value)
            return None
        return RawEvent(kind=EventKind.RETRY, raw_value=value, retry=retry)

    return None


class SSEDecoder:
    """Pull-based SSE decoder over an async byte source.

    The source is released exactly once, whether iteration finishes, the
    consumer stops early (use ``async with`` or call ``aclose``) or an
    exception escapes.
    """

    def __init__(
        self,
        source: AsyncIterable[bytes],
        on_close: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self._source = source
        self._on_close = on_close
        self._closed = False
        self._line_count = 0

    @classmethod
    def from_response(cls, response: httpx.Response) -> "SSEDecoder":
        """Decode the body of a streaming ``httpx`` response."""
        return cls(response.aiter_bytes(), on_close=response.aclose)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def line_count(self) -> int:
        return self._line_count

    async def iter_events(self) -> AsyncIterator[RawEvent]:
        """Yield events in arrival order until the source is exhausted."""
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        buffer = ""
        try:
            async for chunk in self._source:
                buffer += decoder.decode(chunk)
                if "\n" not in buffer:
                    continue
                *lines, buffer = buffer.split("\n")
                for line in lines:
                    event = self._handle_line(line)
                    if event is not None:
                        yield event

            buffer += decoder.decode(b"", final=True)
            if buffer:
                event = self._handle_line(buffer)
                if event is not None:
                    yield event
        finally:
            await self.aclose()

    async def iter_data(self) -> AsyncIterator[RawEvent]:
        """Yield only ``data`` events."""
        async for event in self.iter_events():
            if event.kind is EventKind.DATA:
                yield event

    async def iter_json(self) -> AsyncIterator[Any]:
        """Yield the parsed payload of every ``data`` event holding JSON."""
        async for event in self.iter_events():
            if event.kind is EventKind.DATA and event.is_json:
                yield event.parsed_json

    def _handle_line(self, line: str) -> RawEvent | None:
        self._line_count += 1
        event = parse_line(line)
        if event is not None and event.kind is EventKind.DATA:
            logger.debug(
                "sse_data_received",
                line=self._line_count,
                is_json=event.is_json,
                size=len(event.raw_value),
            )
        return event

    async def aclose(self) -> None:
        """Release the byte source. Safe to call any number of times."""
        if self._closed:
            return
        self._closed = True

        source_close = getattr(self._source, "aclose", None)
        try:
            if source_close is not None:
                await source_close()
        finally:
            if self._on_close is not None:
                await self._on_close()
        logger.debug("sse_source_released", lines=self._line_count)

    async def __aenter__(self) -> "SSEDecoder":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
