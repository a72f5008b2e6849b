"""Configuration module for zproxy."""

from .settings import ConfigurationError, Settings, get_settings


__all__ = ["ConfigurationError", "Settings", "get_settings"]
