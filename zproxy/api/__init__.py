"""HTTP API for zproxy."""

from .app import create_app


__all__ = ["create_app"]
