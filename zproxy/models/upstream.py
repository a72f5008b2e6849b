"""Models for the upstream chat service wire format."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Phase(str, Enum):
    """Upstream generation phase."""

    THINKING = "thinking"
    ANSWER = "answer"
    DONE = "done"
    OTHER = "other"


class UpstreamError(BaseModel):
    """Error reported inside an upstream frame."""

    code: int = 0
    detail: str = ""

    model_config = ConfigDict(extra="ignore")


class UpstreamUsage(BaseModel):
    """Token usage reported by the upstream."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    model_config = ConfigDict(extra="ignore")


class UpstreamInner(BaseModel):
    """Nested ``inner`` payload; only its error is of interest."""

    error: UpstreamError | None = None

    model_config = ConfigDict(extra="ignore")


class UpstreamFrameData(BaseModel):
    """The ``data`` object of an upstream frame."""

    delta_content: str = ""
    edit_content: str = ""
    phase: Phase = Phase.OTHER
    done: bool = False
    usage: UpstreamUsage | None = None
    error: UpstreamError | None = None
    inner: UpstreamInner | None = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("delta_content", "edit_content", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        if v is None:
            return ""
        return v if isinstance(v, str) else str(v)

    @field_validator("phase", mode="before")
    @classmethod
    def normalize_phase(cls, v: Any) -> Phase:
        try:
            return Phase(v)
        except ValueError:
            return Phase.OTHER

    @field_validator("done", mode="before")
    @classmethod
    def coerce_done(cls, v: Any) -> bool:
        return bool(v)


class UpstreamFrame(BaseModel):
    """Decoded JSON payload of one upstream ``data:`` event."""

    type: str = ""
    data: UpstreamFrameData = Field(default_factory=UpstreamFrameData)
    error: UpstreamError | None = None

    model_config = ConfigDict(extra="ignore")

    def get_error(self) -> UpstreamError | None:
        """Return the reported error; outer, then data, then data.inner."""
        if self.error is not None:
            return self.error
        if self.data.error is not None:
            return self.data.error
        if self.data.inner is not None and self.data.inner.error is not None:
            return self.data.inner.error
        return None

    @property
    def is_terminal(self) -> bool:
        return self.data.done or self.data.phase is Phase.DONE


class UpstreamModelItem(BaseModel):
    id: str
    name: str
    owned_by: str = "openai"


class UpstreamRequest(BaseModel):
    """Request body sent to the upstream chat endpoint."""

    stream: bool = True
    model: str
    messages: list[dict[str, Any]]
    params: dict[str, Any] = Field(default_factory=dict)
    features: dict[str, Any] = Field(default_factory=dict)
    background_tasks: dict[str, bool] | None = None
    chat_id: str | None = None
    id: str | None = None
    mcp_servers: list[str] | None = None
    model_item: UpstreamModelItem | None = None
    tool_servers: list[str] | None = None
    variables: dict[str, str] | None = None
