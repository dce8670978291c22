# mls_sync/entrypoints/fastapi_app.py
from __future__ import annotations

from fastapi import FastAPI

from ..adapters.storage.local import LocalBlobStorage
from ..db import create_all
from ..service_layer.admin import SyncCoordinator
from ..service_layer.media_pipeline import MediaPipeline
from .api.routers import health, mls_admin


def create_app(coordinator: SyncCoordinator | None = None, *, create_tables: bool = True) -> FastAPI:
    app = FastAPI(title="MLS Sync - Listing Synchronization Engine")
    app.state.coordinator = coordinator or SyncCoordinator(media_pipeline=MediaPipeline(LocalBlobStorage()))

    @app.on_event("startup")
    async def _startup() -> None:
        # Single place where DB tables are created in dev.
        if create_tables:
            await create_all()
        await app.state.coordinator.reconcile_stale_runs()

    # Routers
    app.include_router(health.router)
    app.include_router(mls_admin.router)

    return app
