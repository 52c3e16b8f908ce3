"""GET / and GET /health: liveness checks."""
from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from app.core.settings import get_settings

router = APIRouter(tags=["health"])

BANNER = "Identity Reconciliation Engine is UP and RUNNING. Use the dashboard to interact."


@router.get("/", summary="Service banner", response_class=PlainTextResponse)
def banner() -> str:
    return BANNER


@router.get("/health", summary="Basic health check")
def health_check() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.app_env,
    }
