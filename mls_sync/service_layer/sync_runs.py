# mls_sync/service_layer/sync_runs.py
from __future__ import annotations

import json
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.errors import classify_error
from ..domain.parsing import utcnow
from ..domain.types import SyncRunStatus
from ..models import SyncHistory


def _seal(hr: SyncHistory, status: SyncRunStatus, duration_seconds: float) -> None:
    hr.status = status
    hr.completed_at = utcnow()
    hr.duration_seconds = int(round(duration_seconds))


async def finish_sync_run(
    session: AsyncSession,
    hr: SyncHistory,
    *,
    status: SyncRunStatus,
    counters: dict[str, int],
    duration_seconds: float,
    errors: list[dict[str, Any]] | None = None,
) -> None:
    """success / partial / cancelled: counters are what the run got through."""
    _seal(hr, status, duration_seconds)
    hr.properties_fetched = counters.get("fetched", 0)
    hr.properties_added = counters.get("added", 0)
    hr.properties_updated = counters.get("updated", 0)
    hr.properties_deleted = counters.get("deleted", 0)
    hr.properties_errored = counters.get("errored", 0)
    hr.media_downloaded = counters.get("media_downloaded", 0)
    hr.media_failed = counters.get("media_failed", 0)

    if status == SyncRunStatus.cancelled:
        hr.error_message = "Sync cancelled"
    elif errors:
        hr.error_message = f"{len(errors)} listing(s) failed"
    else:
        hr.error_message = None
    hr.error_details_json = json.dumps({"errors": errors}) if errors else None
    await session.flush()


async def fail_sync_run(
    session: AsyncSession,
    hr: SyncHistory,
    err: BaseException,
    *,
    duration_seconds: float,
    counters: dict[str, int] | None = None,
) -> None:
    _seal(hr, SyncRunStatus.failed, duration_seconds)
    if counters:
        hr.properties_fetched = counters.get("fetched", 0)
    error_type, retryable = classify_error(err)
    hr.error_message = str(err) or err.__class__.__name__
    hr.error_details_json = json.dumps(
        {"error_type": error_type.value, "retryable": retryable, "exception": err.__class__.__name__}
    )
    await session.flush()
