"""OpenAI-format streaming formatter utilities.

Every chunk the proxy streams is built here as a ``chat.completion.chunk``
object and framed as one SSE ``data:`` event. The stream ends with
``data: [DONE]``.
"""

import json
from typing import Any

from zproxy.tools.extraction import ToolInvocation


class OpenAIStreamingFormatter:
    """Formats streaming responses to match OpenAI's SSE format."""

    @staticmethod
    def format_data_event(data: dict[str, Any]) -> str:
        """
        Format a data event for OpenAI-compatible Server-Sent Events.

        Args:
            data: Event data dictionary

        Returns:
            Formatted SSE string
        """
        json_data = json.dumps(data, ensure_ascii=False, separators=(",", ":"))
        return f"data: {json_data}\n\n"

    @staticmethod
    def build_chunk(
        message_id: str,
        model: str,
        created: int,
        delta: dict[str, Any],
        finish_reason: str | None = None,
        choice_index: int = 0,
    ) -> dict[str, Any]:
        """Build a ``chat.completion.chunk`` object with a single choice."""
        return {
            "id": message_id,
            "object": "chat.completion.chunk",
            "created": created,
            "model": model,
            "choices": [
                {
                    "index": choice_index,
                    "delta": delta,
                    "logprobs": None,
                    "finish_reason": finish_reason,
                }
            ],
        }

    @staticmethod
    def format_first_chunk(
        message_id: str, model: str, created: int, role: str = "assistant"
    ) -> str:
        """
        Format the first chunk with role and basic metadata.

        Args:
            message_id: Unique identifier for the completion
            model: Model name being used
            created: Unix timestamp when the completion was created
            role: Role of the assistant

        Returns:
            Formatted SSE string
        """
        data = OpenAIStreamingFormatter.build_chunk(
            message_id, model, created, {"role": role}
        )
        return OpenAIStreamingFormatter.format_data_event(data)

    @staticmethod
    def format_content_chunk(
        message_id: str, model: str, created: int, content: str, choice_index: int = 0
    ) -> str:
        """Format a content chunk with text delta."""
        data = OpenAIStreamingFormatter.build_chunk(
            message_id, model, created, {"content": content}, choice_index=choice_index
        )
        return OpenAIStreamingFormatter.format_data_event(data)

    @staticmethod
    def format_reasoning_chunk(
        message_id: str, model: str, created: int, reasoning: str, choice_index: int = 0
    ) -> str:
        """Format a chunk carrying thinking text in ``reasoning_content``."""
        data = OpenAIStreamingFormatter.build_chunk(
            message_id,
            model,
            created,
            {"reasoning_content": reasoning},
            choice_index=choice_index,
        )
        return OpenAIStreamingFormatter.format_data_event(data)

    @staticmethod
    def format_tool_call_chunk(
        message_id: str,
        model: str,
        created: int,
        tool_call: ToolInvocation,
        tool_call_index: int = 0,
        choice_index: int = 0,
    ) -> str:
        """
        Format a tool call chunk.

        The whole invocation is sent in one delta, with its position in the
        response as ``index``.

        Args:
            message_id: Unique identifier for the completion
            model: Model name being used
            created: Unix timestamp when the completion was created
            tool_call: Extracted tool invocation
            tool_call_index: Index of the tool call
            choice_index: Index of the choice (usually 0)

        Returns:
            Formatted SSE string
        """
        delta_call = {
            "index": tool_call_index,
            "id": tool_call["id"],
            "type": tool_call.get("type", "function"),
            "function": {
                "name": tool_call["function"]["name"],
                "arguments": tool_call["function"]["arguments"],
            },
        }
        data = OpenAIStreamingFormatter.build_chunk(
            message_id,
            model,
            created,
            {"tool_calls": [delta_call]},
            choice_index=choice_index,
        )
        return OpenAIStreamingFormatter.format_data_event(data)

    @staticmethod
    def format_final_chunk(
        message_id: str,
        model: str,
        created: int,
        finish_reason: str = "stop",
        choice_index: int = 0,
        usage: dict[str, int] | None = None,
    ) -> str:
        """
        Format the final chunk with finish_reason.

        Args:
            message_id: Unique identifier for the completion
            model: Model name being used
            created: Unix timestamp when the completion was created
            finish_reason: Reason for completion (stop, tool_calls)
            choice_index: Index of the choice (usually 0)
            usage: Optional usage information to include

        Returns:
            Formatted SSE string
        """
        data = OpenAIStreamingFormatter.build_chunk(
            message_id,
            model,
            created,
            {},
            finish_reason=finish_reason,
            choice_index=choice_index,
        )
        if usage:
            data["usage"] = usage
        return OpenAIStreamingFormatter.format_data_event(data)

    @staticmethod
    def format_error_event(error_type: str, error_message: str) -> str:
        """Format a bare ``{"error": ...}`` event for failures before any chunk."""
        return OpenAIStreamingFormatter.format_data_event(
            {"error": {"type": error_type, "message": error_message}}
        )

    @staticmethod
    def format_done() -> str:
        """
        Format the final DONE event.

        Returns:
            Formatted SSE termination string
        """
        return "data: [DONE]\n\n"
