"""Shared test fixtures and configuration for zproxy tests."""

from collections.abc import Generator

import pytest
from pydantic import SecretStr

from zproxy.config.settings import Settings, get_settings
from zproxy.core.logging import setup_logging


TEST_API_KEY = "sk-test-key"

_ENVIRONMENT_NAMES = (
    "LISTEN_PORT",
    "AUTH_TOKEN",
    "SKIP_AUTH_TOKEN",
    "API_ENDPOINT",
    "BACKUP_TOKEN",
    "ANONYMOUS_MODE",
    "PRIMARY_MODEL",
    "THINKING_MODEL",
    "SEARCH_MODEL",
    "AIR_MODEL",
    "THINKING_PROCESSING",
    "TOOL_SUPPORT",
    "SCAN_LIMIT",
    "DEBUG_LOGGING",
)


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom settings."""
    config.option.asyncio_mode = "auto"
    setup_logging(json_logs=False, log_level_name="DEBUG", configure_uvicorn=False)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Keep host environment variables out of settings under test."""
    for name in _ENVIRONMENT_NAMES:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with a known API key and anonymous mode off."""
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        security={"auth_token": SecretStr(TEST_API_KEY)},
        upstream={
            "api_endpoint": "https://upstream.test/api/chat/completions",
            "origin": "https://upstream.test",
            "anonymous_mode": False,
            "backup_token": SecretStr("backup-token"),
        },
    )
