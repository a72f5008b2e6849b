"""API routes for zproxy."""

from .health import router as health_router
from .openai import router as openai_router


__all__ = ["health_router", "openai_router"]
