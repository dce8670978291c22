# mls_sync/entrypoints/api/routers/mls_admin.py
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from ..deps import get_coordinator, require_api_key
from ....domain.errors import (
    InvalidIntervalError,
    MlsSyncError,
    NoActiveSyncError,
    ProviderConfigError,
    ProviderNotFoundError,
    SyncInProgressError,
)
from ....schemas import IntervalIn, SyncTriggerIn, ToggleEnabledIn
from ....service_layer.admin import SyncCoordinator

router = APIRouter(prefix="/mls/admin", tags=["mls-admin"], dependencies=[Depends(require_api_key)])

_ERRORS: list[tuple[type[MlsSyncError], int, str]] = [
    (SyncInProgressError, 409, "SYNC_IN_PROGRESS"),
    (ProviderNotFoundError, 404, "PROVIDER_NOT_FOUND"),
    (NoActiveSyncError, 404, "NO_ACTIVE_SYNC"),
    (InvalidIntervalError, 400, "INVALID_INTERVAL"),
    (ProviderConfigError, 422, "INVALID_PROVIDER_CONFIG"),
]


def _http_error(e: MlsSyncError) -> HTTPException:
    for exc_type, status, code in _ERRORS:
        if isinstance(e, exc_type):
            return HTTPException(status_code=status, detail={"code": code, "message": str(e)})
    return HTTPException(status_code=500, detail={"code": "SYNC_ERROR", "message": str(e)})


def _ok(data: Any) -> dict[str, Any]:
    return {"success": True, "data": data}


@router.post("/sync/{provider_id}", status_code=202)
async def trigger_sync(
    provider_id: str,
    body: SyncTriggerIn | None = None,
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    body = body or SyncTriggerIn()
    try:
        ack = await coordinator.trigger_sync(
            provider_id,
            body.sync_type,
            "admin",
            max_properties=body.max_properties,
        )
    except MlsSyncError as e:
        raise _http_error(e)
    return _ok(ack.model_dump())


@router.post("/sync/{provider_id}/cancel")
async def cancel_sync(
    provider_id: str,
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    try:
        res = await coordinator.cancel_sync(provider_id)
    except MlsSyncError as e:
        raise _http_error(e)
    return _ok(res.model_dump())


@router.get("/status")
async def all_status(coordinator: SyncCoordinator = Depends(get_coordinator)) -> dict[str, Any]:
    rows = await coordinator.get_all_status()
    return _ok([r.model_dump(mode="json") for r in rows])


@router.get("/status/{provider_id}")
async def provider_status(
    provider_id: str,
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    try:
        row = await coordinator.get_status(provider_id)
    except MlsSyncError as e:
        raise _http_error(e)
    return _ok(row.model_dump(mode="json"))


@router.get("/history")
async def recent_history(
    limit: int = Query(50, ge=1, le=500),
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    rows = await coordinator.get_recent_history(limit)
    return _ok([r.model_dump(mode="json") for r in rows])


@router.get("/history/{provider_id}")
async def provider_history(
    provider_id: str,
    limit: int = Query(50, ge=1, le=500),
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    rows = await coordinator.get_history(provider_id, limit)
    return _ok([r.model_dump(mode="json") for r in rows])


@router.get("/errors/{provider_id}")
async def provider_errors(
    provider_id: str,
    limit: int = Query(100, ge=1, le=1000),
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    rows = await coordinator.get_errors(provider_id, limit)
    return _ok([r.model_dump(mode="json") for r in rows])


@router.get("/statistics")
async def statistics(coordinator: SyncCoordinator = Depends(get_coordinator)) -> dict[str, Any]:
    stats = await coordinator.get_statistics()
    return _ok(stats.model_dump(mode="json"))


@router.patch("/providers/{provider_id}/enabled")
async def toggle_enabled(
    provider_id: str,
    body: ToggleEnabledIn,
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    try:
        row = await coordinator.toggle_enabled(provider_id, body.enabled)
    except MlsSyncError as e:
        raise _http_error(e)
    return _ok(row.model_dump(mode="json"))


@router.patch("/providers/{provider_id}/interval")
async def set_interval(
    provider_id: str,
    body: IntervalIn,
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    try:
        row = await coordinator.set_interval(provider_id, body.interval_hours)
    except MlsSyncError as e:
        raise _http_error(e)
    return _ok(row.model_dump(mode="json"))
