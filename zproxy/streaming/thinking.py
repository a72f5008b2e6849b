"""Normalisation of upstream reasoning markup."""

import re


_SUMMARY_RE = re.compile(r"<summary>.*?</summary>", re.DOTALL)
_DETAILS_OPEN_RE = re.compile(r"<details[^>]*>")
_DETAILS_CLOSE = "</details>"
_MARKER_TOKENS = ("</thinking>", "<Full>", "</Full>")
_QUOTE_PREFIX_RE = re.compile(r"^> ", re.MULTILINE)


def _transform_once(content: str, mode: str) -> str:
    content = _SUMMARY_RE.sub("", content)
    for token in _MARKER_TOKENS:
        content = content.replace(token, "")
    content = content.strip()

    if mode == "think":
        content = _DETAILS_OPEN_RE.sub("<span>", content)
        content = content.replace(_DETAILS_CLOSE, "</span>")
    elif mode == "strip":
        content = _DETAILS_OPEN_RE.sub("", content)
        content = content.replace(_DETAILS_CLOSE, "")

    content = _QUOTE_PREFIX_RE.sub("", content)
    content = content.replace("\n> ", "\n")

    return content.strip()


def transform_thinking_content(content: str, mode: str = "think") -> str:
    """Clean up upstream thinking text for the ``reasoning_content`` channel.

    Steps, in order: drop ``<summary>`` regions, drop ``</thinking>``/``<Full>``
    markers, trim, rewrite the ``<details>`` wrapper according to ``mode``,
    remove ``"> "`` quote prefixes, trim.

    Args:
        content: Raw thinking text from the upstream
        mode: ``think`` turns the ``<details>`` wrapper into ``<span>``,
            ``strip`` removes it, anything else keeps it

    Returns:
        The normalised text. Steps repeat until the text stops changing, so
        applying the function to its own output is a no-op.
    """
    while True:
        transformed = _transform_once(content, mode)
        if transformed == content:
            return transformed
        content = transformed
