"""Health check endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request

from fitcenter_realtime.config import get_settings

router = APIRouter()


@router.get(
    "/health",
    summary="Health check",
    description="Basic health check endpoint.",
)
async def health():
    """Basic health check."""
    return {"status": "healthy", "service": get_settings().app_name}


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if service is ready to receive traffic.",
)
async def ready(request: Request):
    """Readiness check.

    Verifies the Supabase project is configured and the hub is running.
    """
    checks = {
        "supabase": get_settings().supabase.is_configured,
        "hub": getattr(request.app.state, "hub", None) is not None,
    }

    all_ready = all(checks.values())

    return {
        "status": "ready" if all_ready else "not_ready",
        "checks": checks,
    }
