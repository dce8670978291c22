# mls_sync/entrypoints/api/routers/health.py
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from ..deps import get_coordinator, require_api_key
from ....config import settings
from ....service_layer.admin import SyncCoordinator

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/debug/config", dependencies=[Depends(require_api_key)])
def debug_config(coordinator: SyncCoordinator = Depends(get_coordinator)) -> dict[str, Any]:
    def _redact(v: str | None) -> str | None:
        if not v:
            return v
        if len(v) <= 8:
            return "***"
        return v[:4] + "***" + v[-4:]

    return {
        "ENV": settings.ENV,
        "MLS_DB_URL": settings.MLS_DB_URL,
        "API_KEY": _redact(settings.API_KEY),
        "MEDIA_PROCESSING_ENABLED": settings.MEDIA_PROCESSING_ENABLED,
        "MEDIA_ROOT": settings.MEDIA_ROOT,
        "SCHED_MLS_CHECK_INTERVAL_MINUTES": settings.SCHED_MLS_CHECK_INTERVAL_MINUTES,
        "running_syncs": coordinator.active_providers(),
    }
