# mls_sync/domain/policies.py
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Protocol

from .errors import InvalidIntervalError, ListingValidationError
from .types import ListingRecord, SyncRunStatus

MIN_INTERVAL_HOURS = 1
MAX_INTERVAL_HOURS = 24
DEFAULT_INTERVAL_HOURS = 4

REQUIRED_LISTING_FIELDS: tuple[str, ...] = ("external_id", "address", "city", "state", "postal_code")


class _DueCheckable(Protocol):
    sync_enabled: bool
    sync_interval_hours: int
    last_sync_completed_at: datetime | None


def is_sync_due(status: _DueCheckable | None, now: datetime) -> bool:
    """
    Due when enabled and either never completed or the interval has elapsed.
    """
    if status is None or not status.sync_enabled:
        return False
    if status.last_sync_completed_at is None:
        return True
    interval = timedelta(hours=status.sync_interval_hours or DEFAULT_INTERVAL_HOURS)
    return now - status.last_sync_completed_at >= interval


def validate_interval(hours: int) -> int:
    if not isinstance(hours, int) or isinstance(hours, bool):
        raise InvalidIntervalError("Sync interval must be a whole number of hours")
    if hours < MIN_INTERVAL_HOURS or hours > MAX_INTERVAL_HOURS:
        raise InvalidIntervalError(
            f"Sync interval must be between {MIN_INTERVAL_HOURS} and {MAX_INTERVAL_HOURS} hours"
        )
    return hours


def validate_listing(listing: ListingRecord) -> ListingRecord:
    missing = [f for f in REQUIRED_LISTING_FIELDS if not (getattr(listing, f) or "").strip()]
    if missing:
        raise ListingValidationError(listing.external_id, missing)
    return listing


def final_run_status(errored: int, cancelled: bool) -> SyncRunStatus:
    """
    Completed runs: no errors -> success, any record error -> partial.
    Fetch-level failures never reach here; they seal the run as failed.
    """
    if cancelled:
        return SyncRunStatus.cancelled
    return SyncRunStatus.partial if errored > 0 else SyncRunStatus.success
