# mls_sync/service_layer/sync.py
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from ..adapters.providers.base import BaseProvider
from ..adapters.providers.factory import build_provider
from ..domain.errors import ListingTransformError, ListingValidationError, MlsSyncError
from ..domain.parsing import utcnow
from ..domain.policies import final_run_status, validate_listing
from ..domain.types import (
    ListingRecord,
    ProviderConfig,
    SyncOptions,
    SyncRunStatus,
    SyncState,
    SyncType,
)
from .media_pipeline import MediaPipeline, MediaSyncResult
from .sync_runs import fail_sync_run, finish_sync_run
from .unit_of_work import SqlAlchemyUnitOfWork

log = logging.getLogger(__name__)

# Full sync refreshes everything mutable on an existing listing.
FULL_UPDATE_FIELDS: tuple[str, ...] = (
    "price",
    "original_price",
    "status",
    "bedrooms",
    "bathrooms",
    "square_feet",
    "lot_size",
    "year_built",
    "description",
    "remarks",
    "days_on_market",
    "sold_date",
    "features",
    "raw",
)

# Incremental sync only touches price and status (plus bookkeeping).
INCREMENTAL_UPDATE_FIELDS: tuple[str, ...] = ("price", "status", "raw")

UowFactory = Callable[[], SqlAlchemyUnitOfWork]


@dataclass
class SyncResult:
    sync_id: str
    sync_type: SyncType
    status: SyncRunStatus = SyncRunStatus.running
    fetched: int = 0
    added: int = 0
    updated: int = 0
    skipped: int = 0
    errored: int = 0
    media_downloaded: int = 0
    media_failed: int = 0
    duration_seconds: float = 0.0
    errors: list[dict[str, str]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status in (SyncRunStatus.success, SyncRunStatus.partial)

    def counters(self) -> dict[str, int]:
        return {
            "fetched": self.fetched,
            "added": self.added,
            "updated": self.updated,
            "deleted": 0,
            "errored": self.errored,
            "media_downloaded": self.media_downloaded,
            "media_failed": self.media_failed,
        }

    def as_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["sync_type"] = self.sync_type.value
        d["status"] = self.status.value
        d["success"] = self.success
        return d


class SyncOrchestrator:
    """
    One sync run for one provider:

      initializing -> fetching -> processing -> finalizing -> success | partial | failed
                                                          \\-> cancelled

    Each listing is written in its own unit of work, so one bad record rolls back
    only itself. Ledger rows (history, status, error log) are committed separately.
    """

    def __init__(
        self,
        config: ProviderConfig,
        *,
        provider: BaseProvider | None = None,
        provider_factory: Callable[[ProviderConfig], BaseProvider] = build_provider,
        uow_factory: UowFactory = SqlAlchemyUnitOfWork,
        media_pipeline: MediaPipeline | None = None,
        triggered_by: str = "system",
        max_properties: int | None = None,
    ) -> None:
        self.config = config
        self.provider = provider or provider_factory(config)
        self.uow_factory = uow_factory
        self.media_pipeline = media_pipeline
        self.triggered_by = triggered_by
        self.max_properties = max_properties

        self.sync_id = str(uuid.uuid4())
        self.state = SyncState.initializing
        self._cancel = asyncio.Event()

    @property
    def provider_id(self) -> str:
        return self.config.provider_id

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    async def cancel(self) -> None:
        """
        Stop between records. An in-flight connect/fetch is interrupted by
        disconnecting the adapter.
        """
        self._cancel.set()
        log.info("cancellation requested for %s (sync %s)", self.provider_id, self.sync_id)
        await self._disconnect()

    async def full_sync(self) -> SyncResult:
        return await self.run(SyncType.full)

    async def incremental_sync(self) -> SyncResult:
        return await self.run(SyncType.incremental)

    async def run(self, sync_type: SyncType | str = SyncType.incremental) -> SyncResult:
        requested = SyncType(sync_type)
        started = time.monotonic()

        try:
            effective, watermark, snapshot = await self._plan(requested)
            result = SyncResult(sync_id=self.sync_id, sync_type=effective)

            async with self.uow_factory() as uow:
                await uow.repos.history.create(
                    sync_id=self.sync_id,
                    provider_id=self.provider_id,
                    sync_type=effective.value,
                    triggered_by=self.triggered_by,
                    sync_config=snapshot,
                )
                await uow.repos.status.record_start(self.provider_id, utcnow())
            log.info(
                "sync %s started: provider=%s type=%s triggered_by=%s",
                self.sync_id,
                self.provider_id,
                effective.value,
                self.triggered_by,
            )

            try:
                listings = await self._fetch(effective, watermark)
            except Exception as e:
                if self.cancel_requested:
                    return await self._finish(result, started, cancelled=True)
                await self._fail(result, started, e)
                raise

            result.fetched = len(listings)
            self.state = SyncState.processing

            cancelled = False
            for listing in listings:
                if self.cancel_requested:
                    cancelled = True
                    break
                await self._process_one(listing, effective, result)

            # a cancel that lands after the last record does not undo a finished run
            return await self._finish(result, started, cancelled=cancelled)
        finally:
            await self._disconnect()

    # -------------------------
    # Phases
    # -------------------------

    async def _plan(self, requested: SyncType) -> tuple[SyncType, datetime | None, dict[str, Any]]:
        snapshot: dict[str, Any] = self.config.snapshot()
        snapshot["requested_type"] = requested.value
        if self.max_properties:
            snapshot["max_properties"] = self.max_properties

        if requested == SyncType.full:
            return SyncType.full, None, snapshot

        async with self.uow_factory() as uow:
            status = await uow.repos.status.get(self.provider_id)
            watermark = status.last_sync_completed_at if status is not None else None

        if watermark is None:
            log.info("no previous sync for %s, falling back to full sync", self.provider_id)
            snapshot["fallback"] = "no_previous_sync"
            return SyncType.full, None, snapshot

        snapshot["modified_since"] = watermark.isoformat()
        return SyncType.incremental, watermark, snapshot

    async def _fetch(self, sync_type: SyncType, watermark: datetime | None) -> list[ListingRecord]:
        self.state = SyncState.fetching
        await self.provider.connect()
        if self.cancel_requested:
            return []

        options = SyncOptions(
            sync_type=sync_type,
            modified_since=watermark,
            batch_size=self.config.batch_size,
            max_properties=self.max_properties,
            include_media=self.config.include_media,
        )
        listings = await self.provider.fetch_properties(options)
        log.info("fetched %s listings from %s", len(listings), self.provider_id)
        return listings

    async def _process_one(self, listing: ListingRecord, sync_type: SyncType, result: SyncResult) -> None:
        media: MediaSyncResult | None = None
        try:
            if listing.transform_error is not None:
                raise ListingTransformError(listing.external_id, listing.transform_error)
            async with self.uow_factory() as uow:
                if sync_type == SyncType.full:
                    outcome, media = await self._upsert_full(uow, listing)
                else:
                    outcome = await self._update_incremental(uow, listing)
        except Exception as e:
            result.errored += 1
            result.errors.append({"listing_id": listing.external_id or "", "error": str(e)})
            log.error("sync %s: listing %s failed: %s", self.sync_id, listing.external_id or "<no id>", e)
            await self._log_error(e, listing_id=listing.external_id or None)
            return

        if outcome == "added":
            result.added += 1
        elif outcome == "updated":
            result.updated += 1
        else:
            result.skipped += 1

        if media is not None:
            result.media_downloaded += media.downloaded
            result.media_failed += media.failed

    async def _upsert_full(
        self, uow: SqlAlchemyUnitOfWork, listing: ListingRecord
    ) -> tuple[str, MediaSyncResult | None]:
        validate_listing(listing)
        repo = uow.repos.properties

        existing = await repo.find_by_external_id(listing.external_id, self.provider_id)
        if existing is not None:
            await repo.update(existing.id, self._fields(listing, FULL_UPDATE_FIELDS))
            return "updated", None

        created = await repo.create(listing, self.provider_id)
        media = None
        if self.config.include_media and listing.media and self.media_pipeline is not None:
            media = await self.media_pipeline.sync_property_media(created.id, listing.media, uow.repos.media)
        return "added", media

    async def _update_incremental(self, uow: SqlAlchemyUnitOfWork, listing: ListingRecord) -> str:
        if not (listing.external_id or "").strip():
            raise ListingValidationError(listing.external_id, ["external_id"])
        repo = uow.repos.properties

        existing = await repo.find_by_external_id(listing.external_id, self.provider_id)
        if existing is None:
            # new listings wait for the next full sync
            return "skipped"
        await repo.update(existing.id, self._fields(listing, INCREMENTAL_UPDATE_FIELDS))
        return "updated"

    def _fields(self, listing: ListingRecord, names: tuple[str, ...]) -> dict[str, Any]:
        fields = {name: getattr(listing, name) for name in names}
        fields["last_synced_at"] = utcnow()
        fields["sync_status"] = "synced"
        return fields

    async def _finish(self, result: SyncResult, started: float, *, cancelled: bool) -> SyncResult:
        self.state = SyncState.finalizing
        result.status = final_run_status(result.errored, cancelled)
        result.duration_seconds = round(time.monotonic() - started, 3)
        duration = int(round(result.duration_seconds))

        async with self.uow_factory() as uow:
            hr = await uow.repos.history.get(self.sync_id)
            if hr is not None:
                await finish_sync_run(
                    uow.session,
                    hr,
                    status=result.status,
                    counters=result.counters(),
                    duration_seconds=result.duration_seconds,
                    errors=result.errors,
                )
            if result.status == SyncRunStatus.cancelled:
                await uow.repos.status.record_cancelled(self.provider_id, duration_seconds=duration)
            else:
                await uow.repos.status.record_completed(
                    self.provider_id,
                    status=result.status,
                    completed_at=utcnow(),
                    duration_seconds=duration,
                    added=result.added,
                    updated=result.updated,
                    deleted=0,
                    errored=result.errored,
                )

        self.state = SyncState(result.status.value)
        log.info(
            "sync %s %s: fetched=%s added=%s updated=%s skipped=%s errored=%s media=%s/%s (%.1fs)",
            self.sync_id,
            result.status.value,
            result.fetched,
            result.added,
            result.updated,
            result.skipped,
            result.errored,
            result.media_downloaded,
            result.media_failed,
            result.duration_seconds,
        )
        return result

    async def _fail(self, result: SyncResult, started: float, err: Exception) -> None:
        self.state = SyncState.failed
        result.status = SyncRunStatus.failed
        result.duration_seconds = round(time.monotonic() - started, 3)

        async with self.uow_factory() as uow:
            hr = await uow.repos.history.get(self.sync_id)
            if hr is not None:
                await fail_sync_run(
                    uow.session, hr, err, duration_seconds=result.duration_seconds, counters=result.counters()
                )
            await uow.repos.status.record_failure(
                self.provider_id,
                error=str(err) or err.__class__.__name__,
                duration_seconds=int(round(result.duration_seconds)),
            )
        await self._log_error(err, context={"phase": "fetch"})
        log.error("sync %s failed for %s: %s", self.sync_id, self.provider_id, err)

    async def _log_error(
        self,
        exc: BaseException,
        *,
        listing_id: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        async with self.uow_factory() as uow:
            await uow.repos.errors.log(
                provider_id=self.provider_id,
                sync_id=self.sync_id,
                exc=exc,
                listing_id=listing_id,
                context=context,
            )

    async def _disconnect(self) -> None:
        if not self.provider.is_connected:
            return
        try:
            await self.provider.disconnect()
        except MlsSyncError as e:
            log.warning("disconnect from %s failed: %s", self.provider_id, e)
