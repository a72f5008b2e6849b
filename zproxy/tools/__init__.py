"""Tool calling support: prompt injection and recovery of tool calls from text."""

from .extraction import (
    ToolInvocation,
    extract_tool_invocations,
    strip_tool_json,
)
from .prompt import content_to_string, generate_tool_prompt, process_messages_with_tools


__all__ = [
    "ToolInvocation",
    "content_to_string",
    "extract_tool_invocations",
    "generate_tool_prompt",
    "process_messages_with_tools",
    "strip_tool_json",
]
