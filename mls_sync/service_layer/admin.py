# mls_sync/service_layer/admin.py
from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from ..adapters.providers.base import BaseProvider
from ..adapters.providers.factory import build_provider
from ..adapters.repos.provider_configs import row_to_config
from ..domain.errors import (
    NoActiveSyncError,
    ProviderNotFoundError,
    SyncInProgressError,
)
from ..domain.parsing import utcnow
from ..domain.policies import validate_interval
from ..domain.ports import CredentialSource
from ..domain.types import ProviderConfig, SyncType
from ..models import SyncError, SyncHistory, SyncStatus
from ..schemas import (
    CancelResult,
    HistoryStatistics,
    ProviderHealth,
    ProviderStatistics,
    ProviderStatusOut,
    SyncAck,
    SyncErrorOut,
    SyncHistoryOut,
    SyncStatisticsOut,
)
from .credentials import EnvCredentialSource
from .media_pipeline import MediaPipeline
from .sync import SyncOrchestrator, SyncResult, UowFactory
from .unit_of_work import SqlAlchemyUnitOfWork

log = logging.getLogger(__name__)


@dataclass
class ActiveSync:
    provider_id: str
    sync_type: SyncType
    triggered_by: str
    started_at: datetime = field(default_factory=utcnow)
    orchestrator: SyncOrchestrator | None = None
    task: asyncio.Task | None = None


def _rate(ok: int, total: int) -> str:
    return f"{ok / total * 100:.2f}%" if total > 0 else "N/A"


def _loads(s: str | None) -> dict | None:
    return json.loads(s) if s else None


def status_out(row: SyncStatus, *, is_running: bool) -> ProviderStatusOut:
    return ProviderStatusOut(
        provider_id=row.provider_id,
        provider_name=row.provider_name,
        provider_type=row.provider_type,
        sync_enabled=row.sync_enabled,
        sync_interval_hours=row.sync_interval_hours,
        last_sync_started_at=row.last_sync_started_at,
        last_sync_completed_at=row.last_sync_completed_at,
        last_sync_duration_seconds=row.last_sync_duration_seconds,
        last_sync_status=row.last_sync_status,
        last_sync_error=row.last_sync_error,
        statistics=ProviderStatistics(
            total_properties_synced=row.total_properties_synced or 0,
            added_last_sync=row.properties_added_last_sync or 0,
            updated_last_sync=row.properties_updated_last_sync or 0,
            deleted_last_sync=row.properties_deleted_last_sync or 0,
            errored_last_sync=row.properties_errored_last_sync or 0,
        ),
        health=ProviderHealth(
            consecutive_failures=row.consecutive_failures or 0,
            total_sync_count=row.total_sync_count or 0,
            total_success_count=row.total_success_count or 0,
            total_failure_count=row.total_failure_count or 0,
            success_rate=_rate(row.total_success_count or 0, row.total_sync_count or 0),
        ),
        is_running=is_running,
    )


def history_out(row: SyncHistory) -> SyncHistoryOut:
    return SyncHistoryOut(
        sync_id=row.sync_id,
        provider_id=row.provider_id,
        sync_type=row.sync_type,
        started_at=row.started_at,
        completed_at=row.completed_at,
        duration_seconds=row.duration_seconds,
        status=row.status.value,
        properties_fetched=row.properties_fetched or 0,
        properties_added=row.properties_added or 0,
        properties_updated=row.properties_updated or 0,
        properties_deleted=row.properties_deleted or 0,
        properties_errored=row.properties_errored or 0,
        media_downloaded=row.media_downloaded or 0,
        media_failed=row.media_failed or 0,
        error_message=row.error_message,
        triggered_by=row.triggered_by,
        sync_config=_loads(row.sync_config_json),
    )


def error_out(row: SyncError) -> SyncErrorOut:
    return SyncErrorOut(
        id=row.id,
        sync_id=row.sync_id,
        provider_id=row.provider_id,
        error_type=row.error_type,
        error_message=row.error_message,
        error_context=_loads(row.error_context_json),
        mls_listing_id=row.mls_listing_id,
        retryable=row.retryable,
        resolved=row.resolved,
        created_at=row.created_at,
    )


class SyncCoordinator:
    """
    Admin entry point for sync runs. Allows at most one running sync per provider;
    different providers run concurrently. The registry is per instance and is
    empty after a restart.
    """

    def __init__(
        self,
        *,
        uow_factory: UowFactory = SqlAlchemyUnitOfWork,
        credentials: CredentialSource | None = None,
        provider_factory: Callable[[ProviderConfig], BaseProvider] = build_provider,
        media_pipeline: MediaPipeline | None = None,
        lock: asyncio.Lock | None = None,
    ) -> None:
        self.uow_factory = uow_factory
        self.credentials = credentials or EnvCredentialSource()
        self.provider_factory = provider_factory
        self.media_pipeline = media_pipeline
        self._lock = lock or asyncio.Lock()
        self._active: dict[str, ActiveSync] = {}

    # -------------------------
    # Runs
    # -------------------------

    async def trigger_sync(
        self,
        provider_id: str,
        sync_type: SyncType | str = SyncType.incremental,
        triggered_by: str = "admin",
        *,
        max_properties: int | None = None,
    ) -> SyncAck:
        """
        Start a run in the background and return immediately.
        """
        entry = await self._prepare(provider_id, SyncType(sync_type), triggered_by, max_properties)
        entry.task = asyncio.create_task(self._run_background(entry), name=f"mls-sync-{provider_id}")

        assert entry.orchestrator is not None
        log.info("sync triggered for %s (%s) by %s", provider_id, entry.sync_type.value, triggered_by)
        return SyncAck(
            started=True,
            provider_id=provider_id,
            sync_type=entry.sync_type.value,
            triggered_by=triggered_by,
            sync_id=entry.orchestrator.sync_id,
        )

    async def run_sync(
        self,
        provider_id: str,
        sync_type: SyncType | str = SyncType.incremental,
        triggered_by: str = "admin",
        *,
        max_properties: int | None = None,
    ) -> SyncResult:
        """Same guard as trigger_sync, but awaits the run."""
        entry = await self._prepare(provider_id, SyncType(sync_type), triggered_by, max_properties)
        return await self._execute(entry)

    async def cancel_sync(self, provider_id: str) -> CancelResult:
        async with self._lock:
            entry = self._active.get(provider_id)
        if entry is None:
            raise NoActiveSyncError(provider_id)

        if entry.orchestrator is not None:
            await entry.orchestrator.cancel()

        async with self.uow_factory() as uow:
            n = await uow.repos.history.cancel_running(provider_id)
        log.info("sync cancelled for %s (%s running row(s) sealed)", provider_id, n)
        return CancelResult(provider_id=provider_id, cancelled_runs=n)

    def is_running(self, provider_id: str) -> bool:
        return provider_id in self._active

    def active_providers(self) -> list[str]:
        return sorted(self._active)

    async def wait_idle(self) -> None:
        """Wait for every background run started by trigger_sync."""
        tasks = [e.task for e in list(self._active.values()) if e.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def reconcile_stale_runs(self) -> int:
        """
        Seal `running` history rows that no in-memory run owns (left behind by a crash).
        """
        async with self.uow_factory() as uow:
            running = await uow.repos.history.list_running()
            n = 0
            for hr in running:
                entry = self._active.get(hr.provider_id)
                if entry is not None and entry.orchestrator is not None and entry.orchestrator.sync_id == hr.sync_id:
                    continue
                n += await uow.repos.history.cancel_running(hr.provider_id, sync_id=hr.sync_id)
        if n:
            log.warning("reconciled %s stale running sync row(s)", n)
        return n

    # -------------------------
    # Providers
    # -------------------------

    async def register_provider(self, config: ProviderConfig) -> ProviderStatusOut:
        async with self.uow_factory() as uow:
            await uow.repos.providers.upsert(config)
            row = await uow.repos.status.ensure(config)
            out = status_out(row, is_running=self.is_running(config.provider_id))
        log.info("registered provider %s (%s)", config.provider_id, config.provider_type.value)
        return out

    async def toggle_enabled(self, provider_id: str, enabled: bool) -> ProviderStatusOut:
        async with self.uow_factory() as uow:
            row = await uow.repos.status.set_enabled(provider_id, enabled)
            if row is None:
                raise ProviderNotFoundError(provider_id)
            return status_out(row, is_running=self.is_running(provider_id))

    async def set_interval(self, provider_id: str, hours: int) -> ProviderStatusOut:
        validate_interval(hours)
        async with self.uow_factory() as uow:
            row = await uow.repos.status.set_interval(provider_id, hours)
            if row is None:
                raise ProviderNotFoundError(provider_id)
            return status_out(row, is_running=self.is_running(provider_id))

    # -------------------------
    # Read side
    # -------------------------

    async def get_status(self, provider_id: str) -> ProviderStatusOut:
        async with self.uow_factory() as uow:
            row = await uow.repos.status.get(provider_id)
            if row is None:
                raise ProviderNotFoundError(provider_id)
            return status_out(row, is_running=self.is_running(provider_id))

    async def get_all_status(self) -> list[ProviderStatusOut]:
        async with self.uow_factory() as uow:
            rows = await uow.repos.status.list_all()
            return [status_out(r, is_running=self.is_running(r.provider_id)) for r in rows]

    async def get_history(self, provider_id: str, limit: int = 50) -> list[SyncHistoryOut]:
        async with self.uow_factory() as uow:
            rows = await uow.repos.history.list_for_provider(provider_id, limit)
            return [history_out(r) for r in rows]

    async def get_recent_history(self, limit: int = 50) -> list[SyncHistoryOut]:
        async with self.uow_factory() as uow:
            rows = await uow.repos.history.list_recent(limit)
            return [history_out(r) for r in rows]

    async def get_errors(self, provider_id: str, limit: int = 100) -> list[SyncErrorOut]:
        async with self.uow_factory() as uow:
            rows = await uow.repos.errors.list_for_provider(provider_id, limit)
            return [error_out(r) for r in rows]

    async def get_statistics(self) -> SyncStatisticsOut:
        async with self.uow_factory() as uow:
            stats = await uow.repos.history.statistics()
            statuses = await uow.repos.status.list_all()

        return SyncStatisticsOut(
            total_providers=len(statuses),
            active_providers=sum(1 for s in statuses if s.sync_enabled),
            running_syncs=len(self._active),
            total_properties=sum(s.total_properties_synced or 0 for s in statuses),
            sync_statistics=HistoryStatistics(
                **stats,
                success_rate=_rate(stats["successful_syncs"] + stats["partial_syncs"], stats["total_syncs"]),
            ),
        )

    # -------------------------
    # Internals
    # -------------------------

    async def _prepare(
        self,
        provider_id: str,
        sync_type: SyncType,
        triggered_by: str,
        max_properties: int | None,
    ) -> ActiveSync:
        async with self._lock:
            if provider_id in self._active:
                raise SyncInProgressError(provider_id)
            entry = ActiveSync(provider_id=provider_id, sync_type=sync_type, triggered_by=triggered_by)
            self._active[provider_id] = entry

        try:
            config = await self._load_config(provider_id)
            entry.orchestrator = SyncOrchestrator(
                config,
                provider_factory=self.provider_factory,
                uow_factory=self.uow_factory,
                media_pipeline=self.media_pipeline,
                triggered_by=triggered_by,
                max_properties=max_properties,
            )
        except BaseException:
            await self._unregister(entry)
            raise
        return entry

    async def _load_config(self, provider_id: str) -> ProviderConfig:
        async with self.uow_factory() as uow:
            row = await uow.repos.providers.get_active(provider_id)
            if row is None:
                raise ProviderNotFoundError(provider_id)
            return row_to_config(row, self.credentials.resolve(provider_id))

    async def _execute(self, entry: ActiveSync) -> SyncResult:
        assert entry.orchestrator is not None
        try:
            return await entry.orchestrator.run(entry.sync_type)
        finally:
            await self._unregister(entry)

    async def _run_background(self, entry: ActiveSync) -> SyncResult | None:
        try:
            return await self._execute(entry)
        except Exception:
            # already sealed as failed in the ledger; nobody awaits this task
            log.exception("background sync for %s failed", entry.provider_id)
            return None

    async def _unregister(self, entry: ActiveSync) -> None:
        async with self._lock:
            if self._active.get(entry.provider_id) is entry:
                del self._active[entry.provider_id]
