"""Settings consumed by the protocol translation engine."""

from typing import Literal

from pydantic import BaseModel, Field


ThinkingMode = Literal["think", "strip", "raw"]


class TranslationSettings(BaseModel):
    """Values that shape how upstream output is re-framed."""

    scan_limit: int = Field(
        default=200_000,
        description="Maximum number of characters scanned when extracting tool calls",
        ge=1,
    )

    thinking_mode: ThinkingMode = Field(
        default="think",
        description="think: <details> becomes <span>; strip: wrapper tags removed; raw: left as-is",
    )

    tool_support: bool = Field(
        default=True,
        description="Inject tool prompts and extract tool calls from model text",
    )
