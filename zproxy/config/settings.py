"""Settings configuration for zproxy."""

import os
from functools import lru_cache
from typing import Any

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core import CORSSettings, LoggingSettings, SecuritySettings, ServerSettings
from .translation import TranslationSettings
from .upstream import ModelSettings, UpstreamSettings


__all__ = ["Settings", "ConfigurationError", "get_settings"]


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


# Flat environment names kept for deployments configured before the nested layout.
_LEGACY_ENV: dict[str, tuple[str, str]] = {
    "LISTEN_PORT": ("server", "port"),
    "AUTH_TOKEN": ("security", "auth_token"),
    "SKIP_AUTH_TOKEN": ("security", "skip_auth_token"),
    "API_ENDPOINT": ("upstream", "api_endpoint"),
    "BACKUP_TOKEN": ("upstream", "backup_token"),
    "ANONYMOUS_MODE": ("upstream", "anonymous_mode"),
    "PRIMARY_MODEL": ("models", "primary_model"),
    "THINKING_MODEL": ("models", "thinking_model"),
    "SEARCH_MODEL": ("models", "search_model"),
    "AIR_MODEL": ("models", "air_model"),
    "THINKING_PROCESSING": ("translation", "thinking_mode"),
    "TOOL_SUPPORT": ("translation", "tool_support"),
    "SCAN_LIMIT": ("translation", "scan_limit"),
}

_TRUE_VALUES = {"1", "true", "yes", "y", "on"}


class Settings(BaseSettings):
    """
    Configuration settings for zproxy.

    Settings are loaded from environment variables and .env files using the
    nested ``SECTION__FIELD`` form (e.g. ``TRANSLATION__SCAN_LIMIT``). The flat
    names listed in ``_LEGACY_ENV`` are honoured when the nested value is absent.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    server: ServerSettings = Field(
        default_factory=ServerSettings,
        description="Server configuration settings",
    )

    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Logging configuration",
    )

    cors: CORSSettings = Field(
        default_factory=CORSSettings,
        description="CORS configuration settings",
    )

    security: SecuritySettings = Field(
        default_factory=SecuritySettings,
        description="Client API key settings",
    )

    upstream: UpstreamSettings = Field(
        default_factory=UpstreamSettings,
        description="Upstream chat service settings",
    )

    models: ModelSettings = Field(
        default_factory=ModelSettings,
        description="Public model names and upstream ids",
    )

    translation: TranslationSettings = Field(
        default_factory=TranslationSettings,
        description="Protocol translation settings",
    )

    @model_validator(mode="before")
    @classmethod
    def apply_legacy_environment(cls, data: Any) -> Any:
        """Fold flat legacy environment variables into the nested sections."""
        if not isinstance(data, dict):
            return data

        for env_name, (section, field_name) in _LEGACY_ENV.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            section_data = data.setdefault(section, {})
            if isinstance(section_data, dict):
                section_data.setdefault(field_name, value)

        debug_logging = os.environ.get("DEBUG_LOGGING")
        if debug_logging is not None and debug_logging.strip().lower() in _TRUE_VALUES:
            section_data = data.setdefault("logging", {})
            if isinstance(section_data, dict):
                section_data.setdefault("level", "DEBUG")

        return data

    @property
    def server_url(self) -> str:
        """Get the complete server URL."""
        return f"http://{self.server.host}:{self.server.port}"

    def model_dump_safe(self) -> dict[str, Any]:
        """
        Dump model data with sensitive information masked.

        Returns:
            dict: Configuration with sensitive data masked
        """
        data = self.model_dump(mode="json")
        data["security"]["auth_token"] = "***MASKED***"
        data["upstream"]["backup_token"] = "***MASKED***"
        return data


@lru_cache
def get_settings() -> Settings:
    """Get the global settings instance."""
    try:
        return Settings()
    except Exception as e:
        raise ConfigurationError(f"Configuration error: {e}") from e
