"""OpenAI-compatible request and response models.

Only the fields zproxy reads or writes are declared; unknown request fields
are ignored so that clients sending newer OpenAI parameters are accepted.
"""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class OpenAIContentPart(BaseModel):
    """One element of the list form of message content."""

    type: str = Field(description="Content type, e.g. 'text'")
    text: str | None = Field(default=None, description="Text content")

    model_config = ConfigDict(extra="allow")


class OpenAIMessage(BaseModel):
    """OpenAI-compatible chat message."""

    role: Annotated[str, Field(description="The role of the message sender")]
    content: Annotated[
        str | list[OpenAIContentPart] | None,
        Field(description="The content of the message"),
    ] = None
    name: str | None = Field(
        default=None, description="The name of the participant or tool"
    )
    reasoning_content: str | None = Field(
        default=None, description="Reasoning text produced by a previous assistant turn"
    )
    tool_calls: list[dict[str, Any]] | None = Field(
        default=None, description="Tool calls made by the assistant"
    )
    tool_call_id: str | None = Field(
        default=None, description="Tool call this message is responding to"
    )

    model_config = ConfigDict(extra="ignore")


class OpenAIChatCompletionRequest(BaseModel):
    """OpenAI-compatible chat completion request."""

    model: str = Field(..., description="ID of the model to use")
    messages: list[OpenAIMessage] = Field(
        ...,
        description="A list of messages comprising the conversation so far",
        min_length=1,
    )
    stream: bool = Field(False, description="Whether to stream back partial progress")
    temperature: float | None = Field(
        None, description="Sampling temperature between 0 and 2", ge=0.0, le=2.0
    )
    max_tokens: int | None = Field(
        None, description="The maximum number of tokens to generate", ge=1
    )
    tools: list[dict[str, Any]] | None = Field(
        None, description="A list of tools the model may call"
    )
    tool_choice: str | dict[str, Any] | None = Field(
        None, description="Controls which (if any) tool is called by the model"
    )

    model_config = ConfigDict(extra="ignore")


class OpenAIUsage(BaseModel):
    """Token usage statistics."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class OpenAIResponseMessage(BaseModel):
    """Assistant message of a non-streaming response."""

    role: Literal["assistant"] = "assistant"
    content: str | None = None
    tool_calls: list[dict[str, Any]] | None = None


class OpenAIChoice(BaseModel):
    """A single choice of a non-streaming response."""

    index: int = 0
    message: OpenAIResponseMessage
    finish_reason: str | None = None


class OpenAIChatCompletionResponse(BaseModel):
    """OpenAI-compatible chat completion response."""

    id: str
    object: Literal["chat.completion"] = "chat.completion"
    created: int
    model: str
    choices: list[OpenAIChoice]
    usage: OpenAIUsage = Field(default_factory=OpenAIUsage)


class OpenAIModelInfo(BaseModel):
    """Entry of the /v1/models listing."""

    id: str
    object: Literal["model"] = "model"
    created: int
    owned_by: str


class OpenAIModelsResponse(BaseModel):
    """Response of /v1/models."""

    object: Literal["list"] = "list"
    data: list[OpenAIModelInfo]


class OpenAIErrorDetail(BaseModel):
    """Error detail of an OpenAI error body."""

    message: str
    type: str
    code: str | int | None = None


class OpenAIErrorResponse(BaseModel):
    """OpenAI error response body."""

    error: OpenAIErrorDetail

    @classmethod
    def create(
        cls, message: str, error_type: str, code: str | int | None = None
    ) -> "OpenAIErrorResponse":
        return cls(error=OpenAIErrorDetail(message=message, type=error_type, code=code))
