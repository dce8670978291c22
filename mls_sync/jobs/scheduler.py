# mls_sync/jobs/scheduler.py
from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ..config import settings
from ..domain.errors import ProviderNotFoundError, SyncInProgressError
from ..domain.parsing import utcnow
from ..domain.policies import is_sync_due
from ..domain.types import SyncType
from ..service_layer.admin import SyncCoordinator

log = logging.getLogger(__name__)


async def run_due_syncs(coordinator: SyncCoordinator, now: datetime | None = None) -> list[str]:
    """
    Trigger an incremental sync for every enabled provider whose interval has
    elapsed. Returns the provider ids that were started.
    """
    now = now or utcnow()
    async with coordinator.uow_factory() as uow:
        due = [s.provider_id for s in await uow.repos.status.list_enabled() if is_sync_due(s, now)]

    started: list[str] = []
    for provider_id in due:
        try:
            await coordinator.trigger_sync(provider_id, SyncType.incremental, "scheduled")
        except SyncInProgressError:
            log.info("skip %s: sync already running", provider_id)
            continue
        except ProviderNotFoundError:
            log.warning("skip %s: no active provider configuration", provider_id)
            continue
        started.append(provider_id)

    if started:
        log.info("scheduled syncs started: %s", ", ".join(started))
    return started


def build_scheduler(coordinator: SyncCoordinator) -> AsyncIOScheduler:
    sched = AsyncIOScheduler()

    # due-check cadence (default every 60 minutes)
    sched.add_job(
        lambda: asyncio.create_task(run_due_syncs(coordinator)),
        "interval",
        minutes=settings.SCHED_MLS_CHECK_INTERVAL_MINUTES,
    )

    return sched
