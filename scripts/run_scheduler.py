from __future__ import annotations

import asyncio
import logging

from mls_sync.adapters.storage.local import LocalBlobStorage
from mls_sync.db import create_all
from mls_sync.jobs.scheduler import build_scheduler, run_due_syncs
from mls_sync.logging_config import configure_logging
from mls_sync.service_layer.admin import SyncCoordinator
from mls_sync.service_layer.media_pipeline import MediaPipeline


async def main() -> None:
    configure_logging()
    log = logging.getLogger(__name__)

    await create_all()
    coordinator = SyncCoordinator(media_pipeline=MediaPipeline(LocalBlobStorage()))
    await coordinator.reconcile_stale_runs()

    scheduler = build_scheduler(coordinator)
    scheduler.start()
    log.info("Scheduler started")

    # first due-check right away instead of waiting a full interval
    await run_due_syncs(coordinator)

    try:
        while True:
            await asyncio.sleep(3600)
    except (KeyboardInterrupt, asyncio.CancelledError):
        scheduler.shutdown()
        await coordinator.wait_idle()
        log.info("Scheduler stopped")


if __name__ == "__main__":
    asyncio.run(main())
