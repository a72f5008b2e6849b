"""Builders for upstream SSE payloads and fake byte sources."""

import json
from collections.abc import AsyncIterator
from typing import Any


class FakeByteSource:
    """Async byte source that records how it is consumed and released."""

    def __init__(
        self,
        chunks: list[bytes],
        raise_at: int | None = None,
        error: BaseException | None = None,
    ) -> None:
        self.chunks = chunks
        self.raise_at = raise_at
        self.error = error or RuntimeError("connection reset")
        self.pulled = 0
        self.close_count = 0

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[bytes]:
        for index, chunk in enumerate(self.chunks):
            if index == self.raise_at:
                raise self.error
            self.pulled += 1
            yield chunk
        if self.raise_at is not None and self.raise_at >= len(self.chunks):
            raise self.error

    async def aclose(self) -> None:
        self.close_count += 1


def frame(
    phase: str | None = None,
    delta: str | None = None,
    edit: str | None = None,
    done: bool | None = None,
    **data: Any,
) -> dict[str, Any]:
    """Build one upstream frame payload."""
    if phase is not None:
        data["phase"] = phase
    if delta is not None:
        data["delta_content"] = delta
    if edit is not None:
        data["edit_content"] = edit
    if done is not None:
        data["done"] = done
    return {"type": "chat:completion", "data": data}


def sse(*payloads: dict[str, Any] | str) -> bytes:
    """Frame payloads as upstream ``data:`` events."""
    lines = []
    for payload in payloads:
        value = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
        lines.append(f"data: {value}\n\n")
    return "".join(lines).encode("utf-8")


def parse_chunks(chunks: list[str]) -> list[Any]:
    """Decode emitted SSE chunks; ``[DONE]`` is returned as the string."""
    parsed = []
    for chunk in chunks:
        assert chunk.startswith("data: ")
        assert chunk.endswith("\n\n")
        body = chunk[len("data: ") : -2]
        parsed.append(body if body == "[DONE]" else json.loads(body))
    return parsed


async def collect(iterator: AsyncIterator[Any]) -> list[Any]:
    return [item async for item in iterator]
