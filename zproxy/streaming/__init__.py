"""Upstream stream decoding and content normalisation."""

from .sse import EventKind, RawEvent, SSEDecoder, parse_line
from .thinking import transform_thinking_content


__all__ = [
    "EventKind",
    "RawEvent",
    "SSEDecoder",
    "parse_line",
    "transform_thinking_content",
]
