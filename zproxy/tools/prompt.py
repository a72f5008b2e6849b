"""Tool prompt injection for an upstream without native function calling.

Tool definitions are rendered into the system prompt together with the
``tool_calls`` JSON format the model must answer with. Tool result messages
are rewritten as assistant messages because the upstream only knows the
``system``/``user``/``assistant`` roles.
"""

import json
from typing import Any


DEFAULT_SYSTEM_PROMPT = "你是一个有用的助手。"
TOOL_CHOICE_HINT = "\n\n请根据需要使用提供的工具函数。"
FORCED_FUNCTION_HINT = "\n\n请使用 {name} 函数来处理这个请求。"

_USAGE_INSTRUCTIONS = (
    "\n\n# USAGE INSTRUCTIONS\n"
    "When you need to execute a function, respond ONLY with a JSON object containing tool_calls:\n"
    "```json\n"
    "{\n"
    '  "tool_calls": [\n'
    "    {\n"
    '      "id": "call_xxx",\n'
    '      "type": "function",\n'
    '      "function": {\n'
    '        "name": "function_name",\n'
    '        "arguments": "{\\"param1\\": \\"value1\\"}"\n'
    "      }\n"
    "    }\n"
    "  ]\n"
    "}\n"
    "```\n"
    "Important: No explanatory text before or after the JSON. "
    "The 'arguments' field must be a JSON string, not an object.\n"
)


def content_to_string(content: Any) -> str:
    """Flatten OpenAI message content (string or list of parts) to text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, dict) and part.get("type") == "text":
                parts.append(part.get("text") or "")
            elif isinstance(part, str):
                parts.append(part)
        return " ".join(parts)
    return ""


def _render_tool(function_spec: dict[str, Any]) -> str:
    name = function_spec.get("name") or "unknown"
    description = function_spec.get("description") or ""
    parameters = function_spec.get("parameters") or {}

    lines = [f"## {name}", f"**Purpose**: {description}"]

    properties = parameters.get("properties") or {}
    required = set(parameters.get("required") or [])
    if properties:
        lines.append("**Parameters**:")
        for param_name, details in properties.items():
            details = details if isinstance(details, dict) else {}
            param_type = details.get("type", "any")
            param_desc = details.get("description", "")
            flag = "**Required**" if param_name in required else "*Optional*"
            lines.append(f"- `{param_name}` ({param_type}) - {flag}: {param_desc}")

    return "\n".join(lines)


def generate_tool_prompt(tools: list[dict[str, Any]] | None) -> str:
    """Render function tools as a prompt section; empty when there are none."""
    if not tools:
        return ""

    definitions = [
        _render_tool(tool.get("function") or {})
        for tool in tools
        if isinstance(tool, dict) and tool.get("type") == "function"
    ]
    if not definitions:
        return ""

    return (
        "\n\n# AVAILABLE FUNCTIONS\n"
        + "\n\n---\n".join(definitions)
        + _USAGE_INSTRUCTIONS
    )


def tools_enabled(
    tools: list[dict[str, Any]] | None, tool_choice: Any, tool_support: bool
) -> bool:
    """Whether a request runs in tool mode."""
    return bool(tool_support and tools and tool_choice != "none")


def _append_to_last_user(messages: list[dict[str, Any]], suffix: str) -> None:
    if messages and messages[-1].get("role") == "user":
        last = dict(messages[-1])
        last["content"] = content_to_string(last.get("content") or "") + suffix
        messages[-1] = last


def process_messages_with_tools(
    messages: list[dict[str, Any]],
    tools: list[dict[str, Any]] | None = None,
    tool_choice: Any = None,
    tool_support: bool = True,
) -> list[dict[str, Any]]:
    """Prepare OpenAI messages for the upstream.

    Injects the tool prompt into the system message (creating one if needed),
    adds a tool-choice hint to the last user message, rewrites ``tool`` and
    ``function`` messages as assistant messages and flattens all content to
    strings.
    """
    processed: list[dict[str, Any]] = []

    if tools_enabled(tools, tool_choice, tool_support):
        tools_prompt = generate_tool_prompt(tools)
        if any(m.get("role") == "system" for m in messages):
            for message in messages:
                if message.get("role") == "system":
                    message = dict(message)
                    message["content"] = (
                        content_to_string(message.get("content") or "") + tools_prompt
                    )
                processed.append(message)
        else:
            processed.append(
                {"role": "system", "content": DEFAULT_SYSTEM_PROMPT + tools_prompt}
            )
            processed.extend(messages)

        if tool_choice in ("required", "auto"):
            _append_to_last_user(processed, TOOL_CHOICE_HINT)
        elif isinstance(tool_choice, dict) and tool_choice.get("type") == "function":
            function_name = (tool_choice.get("function") or {}).get("name")
            if function_name:
                _append_to_last_user(
                    processed, FORCED_FUNCTION_HINT.format(name=function_name)
                )
    else:
        processed.extend(messages)

    final_messages = []
    for message in processed:
        if message.get("role") in ("tool", "function"):
            tool_name = message.get("name") or "unknown"
            raw_content = message.get("content")
            if isinstance(raw_content, dict):
                tool_content = json.dumps(raw_content, ensure_ascii=False, indent=2)
            else:
                tool_content = content_to_string(raw_content or "")
            final_messages.append(
                {
                    "role": "assistant",
                    "content": f"工具 {tool_name} 返回结果:\n```json\n{tool_content}\n```",
                }
            )
        else:
            final_message = dict(message)
            final_message["content"] = content_to_string(message.get("content") or "")
            final_messages.append(final_message)

    return final_messages

