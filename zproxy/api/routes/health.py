"""Service banner and health check endpoints."""

from typing import Any

from fastapi import APIRouter, Response

from zproxy import __version__


router = APIRouter()


@router.get("/")
async def root() -> dict[str, str]:
    return {"message": "OpenAI Compatible API Server"}


@router.get("/health")
async def health_check(response: Response) -> dict[str, Any]:
    """Report that the process is up; upstream reachability is not probed."""
    response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
    return {"status": "pass", "service": "zproxy", "version": __version__}
