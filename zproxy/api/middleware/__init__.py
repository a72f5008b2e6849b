"""Middleware and exception handlers for zproxy."""

from .errors import setup_error_handlers


__all__ = ["setup_error_handlers"]
