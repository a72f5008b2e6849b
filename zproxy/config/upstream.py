"""Upstream chat service and model naming settings."""

from typing import Any

from pydantic import BaseModel, Field, SecretStr, field_validator


class UpstreamSettings(BaseModel):
    """How to reach and authenticate against the upstream chat API."""

    api_endpoint: str = Field(
        default="https://chat.z.ai/api/chat/completions",
        description="Upstream chat completions URL",
    )

    origin: str = Field(
        default="https://chat.z.ai",
        description="Upstream web origin, used for Origin/Referer and the anonymous token endpoint",
    )

    backup_token: SecretStr = Field(
        default=SecretStr(""),
        description="Fixed upstream token used when anonymous mode is off or fails",
    )

    anonymous_mode: bool = Field(
        default=True,
        description="Fetch a fresh guest token from the upstream for every request",
    )

    timeout: float = Field(
        default=60.0,
        description="Upstream chat request timeout in seconds",
        gt=0,
    )

    token_timeout: float = Field(
        default=10.0,
        description="Anonymous token request timeout in seconds",
        gt=0,
    )

    fe_version: str = Field(
        default="prod-fe-1.0.70",
        description="Value sent in the X-FE-Version header",
    )

    @field_validator("backup_token", mode="before")
    @classmethod
    def validate_backup_token(cls, v: Any) -> Any:
        """Convert string values to SecretStr."""
        if isinstance(v, str):
            return SecretStr(v)
        return v


class ModelSettings(BaseModel):
    """Public model names and the upstream model ids they map to."""

    primary_model: str = Field(default="GLM-4.5")
    thinking_model: str = Field(default="GLM-4.5-Thinking")
    search_model: str = Field(default="GLM-4.5-Search")
    air_model: str = Field(default="GLM-4.5-Air")

    default_upstream_id: str = Field(
        default="0727-360B-API",
        description="Upstream model id for every model except the air model",
    )

    air_upstream_id: str = Field(
        default="0727-106B-API",
        description="Upstream model id for the air model",
    )

    owned_by: str = Field(default="z.ai")

    @property
    def public_models(self) -> list[str]:
        """Model ids advertised on /v1/models."""
        return [
            self.primary_model,
            self.thinking_model,
            self.search_model,
            self.air_model,
        ]
