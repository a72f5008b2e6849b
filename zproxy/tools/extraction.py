"""Recovery of tool calls that the upstream model writes as JSON inside its text.

The upstream has no native function-calling channel. The model is prompted to
answer with a ``{"tool_calls": [...]}`` object, which then shows up in the
response text in one of three shapes. ``extract_tool_invocations`` tries them
in order and returns the first hit:

1. a fenced ```` ```json ```` block (``extract_from_fenced_blocks``)
2. a bare JSON object found by brace matching (``extract_from_inline_json``)
3. a ``调用函数: NAME 参数: {...}`` sentence (``extract_from_natural_language``)

``strip_tool_json`` removes the spans the first two strategies recognise and
leaves everything else untouched.
"""

import json
import re
import uuid
from bisect import bisect_left
from collections.abc import Iterator
from typing import Any, TypedDict

import structlog


logger = structlog.get_logger(__name__)

DEFAULT_SCAN_LIMIT = 200_000

TOOL_CALL_FENCE_PATTERN = re.compile(r"```json\s*(\{.*?\})\s*```", re.DOTALL)
TOOL_CALLS_KEY_PATTERN = re.compile(r'"tool_calls"')
FUNCTION_CALL_PATTERN = re.compile(
    r"调用函数\s*[：:]\s*([\w\-.]+)\s*(?:参数|arguments)\s*[：:]\s*(?=\{)"
)


class ToolFunction(TypedDict):
    name: str
    arguments: str


class ToolInvocation(TypedDict):
    id: str
    type: str
    function: ToolFunction


def generate_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:24]}"


def serialize_arguments(arguments: Any) -> str:
    """Return tool arguments as the JSON string the OpenAI contract requires."""
    if arguments is None:
        return "{}"
    if isinstance(arguments, str):
        return arguments
    return json.dumps(arguments, ensure_ascii=False, separators=(",", ":"))


def normalize_tool_call(raw: Any) -> ToolInvocation | None:
    """Coerce one ``tool_calls`` entry into a ``ToolInvocation``.

    Entries that are not objects are rejected. A missing ``id`` is generated
    and a missing ``function`` name becomes the empty string.
    """
    if not isinstance(raw, dict):
        return None
    function = raw.get("function")
    if not isinstance(function, dict):
        function = {}
    name = function.get("name")
    if not isinstance(name, str):
        name = "" if name is None else str(name)

    call_id = raw.get("id")
    return ToolInvocation(
        id=call_id if isinstance(call_id, str) and call_id else generate_call_id(),
        type="function",
        function=ToolFunction(
            name=name,
            arguments=serialize_arguments(function.get("arguments")),
        ),
    )


def parse_tool_calls(candidate: str) -> list[ToolInvocation] | None:
    """Parse ``candidate`` as JSON and return its normalised ``tool_calls``."""
    try:
        parsed = json.loads(candidate)
    except (ValueError, RecursionError):
        return None
    if not isinstance(parsed, dict):
        return None
    tool_calls = parsed.get("tool_calls")
    if not isinstance(tool_calls, list):
        return None

    invocations = []
    for raw in tool_calls:
        invocation = normalize_tool_call(raw)
        if invocation is not None:
            invocations.append(invocation)
    return invocations or None


def find_brace_spans(text: str) -> dict[int, int]:
    """Map the offset of every ``{`` that closes to the index just past its ``}``.

    One left-to-right pass with a stack of open braces. String literals are
    only tracked inside an object, so quotes in surrounding prose do not hide
    the braces that follow them. Braces that never close are left out.
    """
    spans: dict[int, int] = {}
    stack: list[int] = []
    in_string = False
    escape_next = False
    for index, char in enumerate(text):
        if in_string:
            if escape_next:
                escape_next = False
            elif char == "\\":
                escape_next = True
            elif char == '"':
                in_string = False
        elif char == "{":
            stack.append(index)
        elif char == "}":
            if stack:
                spans[stack.pop()] = index + 1
        elif char == '"' and stack:
            in_string = True
    return spans


def iter_fenced_tool_spans(
    text: str,
) -> Iterator[tuple[int, int, list[ToolInvocation]]]:
    """Yield ``(start, end, calls)`` for fenced json blocks holding tool calls."""
    for match in TOOL_CALL_FENCE_PATTERN.finditer(text):
        calls = parse_tool_calls(match.group(1))
        if calls:
            yield match.start(), match.end(), calls


def iter_inline_tool_spans(
    text: str,
) -> Iterator[tuple[int, int, list[ToolInvocation]]]:
    """Yield ``(start, end, calls)`` for brace-balanced objects holding tool calls.

    Candidates are tried in order of their opening brace, so an outer object
    is tried before the objects nested in it. Only candidates that contain a
    ``"tool_calls"`` key are parsed.
    """
    spans = find_brace_spans(text)
    key_offsets = [match.start() for match in TOOL_CALLS_KEY_PATTERN.finditer(text)]
    resume_at = 0
    for start in sorted(spans):
        if start < resume_at:
            continue
        end = spans[start]
        key = bisect_left(key_offsets, start)
        if key == len(key_offsets) or key_offsets[key] >= end:
            continue
        calls = parse_tool_calls(text[start:end])
        if calls:
            yield start, end, calls
            resume_at = end


def extract_from_fenced_blocks(text: str) -> list[ToolInvocation] | None:
    for _, _, calls in iter_fenced_tool_spans(text):
        return calls
    return None


def extract_from_inline_json(text: str) -> list[ToolInvocation] | None:
    for _, _, calls in iter_inline_tool_spans(text):
        return calls
    return None


def extract_from_natural_language(text: str) -> list[ToolInvocation] | None:
    spans = None
    for match in FUNCTION_CALL_PATTERN.finditer(text):
        if spans is None:
            spans = find_brace_spans(text)
        args_start = match.end()
        args_end = spans.get(args_start)
        if args_end is None:
            continue
        arguments = text[args_start:args_end]
        try:
            json.loads(arguments)
        except ValueError:
            continue
        return [
            ToolInvocation(
                id=generate_call_id(),
                type="function",
                function=ToolFunction(name=match.group(1).strip(), arguments=arguments),
            )
        ]
    return None


_STRATEGIES = (
    ("fenced", extract_from_fenced_blocks),
    ("inline", extract_from_inline_json),
    ("natural_language", extract_from_natural_language),
)


def extract_tool_invocations(
    text: str, scan_limit: int = DEFAULT_SCAN_LIMIT
) -> list[ToolInvocation] | None:
    """Recover tool calls from model output.

    Args:
        text: Accumulated response text
        scan_limit: Only the first ``scan_limit`` characters are examined

    Returns:
        A non-empty list of invocations, or ``None`` when no strategy matched
    """
    if not text:
        return None

    scannable = text[:scan_limit]
    for strategy, extract in _STRATEGIES:
        calls = extract(scannable)
        if calls:
            logger.debug(
                "tool_calls_extracted",
                strategy=strategy,
                count=len(calls),
                names=[call["function"]["name"] for call in calls],
            )
            return calls
    return None


def _remove_spans(text: str, spans: list[tuple[int, int]]) -> str:
    parts = []
    cursor = 0
    for start, end in spans:
        parts.append(text[cursor:start])
        cursor = end
    parts.append(text[cursor:])
    return "".join(parts)


def strip_tool_json(text: str, scan_limit: int = DEFAULT_SCAN_LIMIT) -> str:
    """Remove tool-call JSON from ``text``, keeping all other characters.

    Fenced blocks are removed first, then bare objects. A span is removed only
    if it would have been accepted by the matching extraction strategy, so
    text without recognisable tool calls comes back unchanged apart from
    surrounding whitespace.
    """
    if not text:
        return ""

    head, tail = text[:scan_limit], text[scan_limit:]
    head = _remove_spans(
        head, [(start, end) for start, end, _ in iter_fenced_tool_spans(head)]
    )
    head = _remove_spans(
        head, [(start, end) for start, end, _ in iter_inline_tool_spans(head)]
    )
    return (head + tail).strip()
