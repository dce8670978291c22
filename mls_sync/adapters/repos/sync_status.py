# mls_sync/adapters/repos/sync_status.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ...config import settings
from ...domain.parsing import utcnow
from ...domain.policies import is_sync_due
from ...domain.types import ProviderConfig, SyncRunStatus
from ...models import SyncStatus


class SyncStatusRepository:
    """
    Rolling per-provider health. Only the orchestrator writes run outcomes here;
    admins change the enabled flag and interval.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, provider_id: str) -> SyncStatus | None:
        q = select(SyncStatus).where(SyncStatus.provider_id == provider_id)
        return (await self.session.execute(q)).scalars().first()

    async def list_all(self) -> list[SyncStatus]:
        q = select(SyncStatus).order_by(SyncStatus.provider_id.asc())
        return list((await self.session.execute(q)).scalars().all())

    async def list_enabled(self) -> list[SyncStatus]:
        q = (
            select(SyncStatus)
            .where(SyncStatus.sync_enabled == True)  # noqa: E712
            .order_by(SyncStatus.provider_id.asc())
        )
        return list((await self.session.execute(q)).scalars().all())

    async def ensure(self, config: ProviderConfig) -> SyncStatus:
        row = await self.get(config.provider_id)
        if row is None:
            row = SyncStatus(
                provider_id=config.provider_id,
                provider_name=config.provider_name,
                provider_type=config.provider_type.value,
                sync_enabled=True,
                sync_interval_hours=settings.MLS_DEFAULT_INTERVAL_HOURS,
                total_properties_synced=0,
                properties_added_last_sync=0,
                properties_updated_last_sync=0,
                properties_deleted_last_sync=0,
                properties_errored_last_sync=0,
                consecutive_failures=0,
                total_sync_count=0,
                total_success_count=0,
                total_failure_count=0,
            )
            self.session.add(row)
        else:
            row.provider_name = config.provider_name
            row.provider_type = config.provider_type.value
            row.updated_at = utcnow()
        await self.session.flush()
        return row

    async def should_sync(self, provider_id: str, now: datetime | None = None) -> bool:
        return is_sync_due(await self.get(provider_id), now or utcnow())

    # -------------------------
    # Run outcomes
    # -------------------------

    async def record_start(self, provider_id: str, started_at: datetime) -> None:
        row = await self.get(provider_id)
        if row is None:
            return
        row.last_sync_started_at = started_at
        row.last_sync_status = SyncRunStatus.running.value
        row.updated_at = utcnow()
        await self.session.flush()

    async def record_completed(
        self,
        provider_id: str,
        *,
        status: SyncRunStatus,
        completed_at: datetime,
        duration_seconds: int,
        added: int,
        updated: int,
        deleted: int,
        errored: int,
    ) -> None:
        """success or partial: advances the watermark and resets the failure streak."""
        row = await self.get(provider_id)
        if row is None:
            return
        row.last_sync_completed_at = completed_at
        row.last_sync_duration_seconds = duration_seconds
        row.last_sync_status = status.value
        row.last_sync_error = f"{errored} listing(s) failed" if errored else None

        row.properties_added_last_sync = added
        row.properties_updated_last_sync = updated
        row.properties_deleted_last_sync = deleted
        row.properties_errored_last_sync = errored
        row.total_properties_synced = (row.total_properties_synced or 0) + added + updated

        row.consecutive_failures = 0
        row.total_sync_count = (row.total_sync_count or 0) + 1
        row.total_success_count = (row.total_success_count or 0) + 1
        row.updated_at = utcnow()
        await self.session.flush()

    async def record_failure(self, provider_id: str, *, error: str, duration_seconds: int) -> None:
        row = await self.get(provider_id)
        if row is None:
            return
        row.last_sync_status = SyncRunStatus.failed.value
        row.last_sync_error = error
        row.last_sync_duration_seconds = duration_seconds

        row.consecutive_failures = (row.consecutive_failures or 0) + 1
        row.total_sync_count = (row.total_sync_count or 0) + 1
        row.total_failure_count = (row.total_failure_count or 0) + 1
        row.updated_at = utcnow()
        await self.session.flush()

    async def record_cancelled(self, provider_id: str, *, duration_seconds: int) -> None:
        """Watermark and failure streak untouched."""
        row = await self.get(provider_id)
        if row is None:
            return
        row.last_sync_status = SyncRunStatus.cancelled.value
        row.last_sync_error = "cancelled"
        row.last_sync_duration_seconds = duration_seconds
        row.total_sync_count = (row.total_sync_count or 0) + 1
        row.updated_at = utcnow()
        await self.session.flush()

    # -------------------------
    # Admin
    # -------------------------

    async def set_enabled(self, provider_id: str, enabled: bool) -> SyncStatus | None:
        row = await self.get(provider_id)
        if row is None:
            return None
        row.sync_enabled = bool(enabled)
        row.updated_at = utcnow()
        await self.session.flush()
        return row

    async def set_interval(self, provider_id: str, hours: int) -> SyncStatus | None:
        row = await self.get(provider_id)
        if row is None:
            return None
        row.sync_interval_hours = hours
        row.updated_at = utcnow()
        await self.session.flush()
        return row
