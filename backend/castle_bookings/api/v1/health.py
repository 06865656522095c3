"""Liveness endpoint."""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter

from castle_bookings.core.config import get_settings

router = APIRouter()


@router.get("", summary="Service health status")
async def healthcheck() -> dict[str, Any]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
        "calendar_backend": settings.calendar_backend,
        "scheduler_enabled": settings.scheduler_enabled,
        "timestamp": datetime.now(UTC).isoformat(),
    }
