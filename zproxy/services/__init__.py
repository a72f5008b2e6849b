"""Services for translating between OpenAI clients and the upstream chat API."""

from .full_response import FullResponseHandler
from .openai_streaming_formatter import OpenAIStreamingFormatter
from .request_builder import build_upstream_request, generate_request_ids, resolve_model
from .stream_handler import StreamPhase, StreamResponseHandler
from .translator import PhaseTranslator, TranslationState
from .upstream_client import UpstreamClient


__all__ = [
    "FullResponseHandler",
    "OpenAIStreamingFormatter",
    "PhaseTranslator",
    "StreamPhase",
    "StreamResponseHandler",
    "TranslationState",
    "UpstreamClient",
    "build_upstream_request",
    "generate_request_ids",
    "resolve_model",
]
