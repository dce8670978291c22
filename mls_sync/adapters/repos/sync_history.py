# mls_sync/adapters/repos/sync_history.py
from __future__ import annotations

import json
from typing import Any

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ...domain.parsing import utcnow
from ...domain.types import SyncRunStatus
from ...models import SyncHistory


class SyncHistoryRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        *,
        sync_id: str,
        provider_id: str,
        sync_type: str,
        triggered_by: str,
        sync_config: dict[str, Any] | None = None,
    ) -> SyncHistory:
        row = SyncHistory(
            sync_id=sync_id,
            provider_id=provider_id,
            sync_type=sync_type,
            started_at=utcnow(),
            status=SyncRunStatus.running,
            properties_fetched=0,
            properties_added=0,
            properties_updated=0,
            properties_deleted=0,
            properties_errored=0,
            media_downloaded=0,
            media_failed=0,
            triggered_by=triggered_by,
            sync_config_json=json.dumps(sync_config or {}),
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def get(self, sync_id: str) -> SyncHistory | None:
        q = select(SyncHistory).where(SyncHistory.sync_id == sync_id)
        return (await self.session.execute(q)).scalars().first()

    async def list_for_provider(self, provider_id: str, limit: int = 50) -> list[SyncHistory]:
        q = (
            select(SyncHistory)
            .where(SyncHistory.provider_id == provider_id)
            .order_by(SyncHistory.started_at.desc(), SyncHistory.id.desc())
            .limit(limit)
        )
        return list((await self.session.execute(q)).scalars().all())

    async def list_recent(self, limit: int = 50) -> list[SyncHistory]:
        q = select(SyncHistory).order_by(SyncHistory.started_at.desc(), SyncHistory.id.desc()).limit(limit)
        return list((await self.session.execute(q)).scalars().all())

    async def list_running(self, provider_id: str | None = None) -> list[SyncHistory]:
        q = select(SyncHistory).where(SyncHistory.status == SyncRunStatus.running)
        if provider_id is not None:
            q = q.where(SyncHistory.provider_id == provider_id)
        return list((await self.session.execute(q)).scalars().all())

    async def cancel_running(self, provider_id: str, *, sync_id: str | None = None) -> int:
        """
        Seal running rows for a provider as cancelled. Completed rows are never touched.
        """
        now = utcnow()
        stmt = (
            update(SyncHistory)
            .where(SyncHistory.provider_id == provider_id)
            .where(SyncHistory.status == SyncRunStatus.running)
            .values(
                status=SyncRunStatus.cancelled,
                completed_at=now,
                error_message="Sync cancelled",
            )
        )
        if sync_id is not None:
            stmt = stmt.where(SyncHistory.sync_id == sync_id)
        res = await self.session.execute(stmt)
        return int(res.rowcount or 0)

    async def statistics(self) -> dict[str, Any]:
        q = select(
            func.count(SyncHistory.id),
            func.sum(case((SyncHistory.status == SyncRunStatus.success, 1), else_=0)),
            func.sum(case((SyncHistory.status == SyncRunStatus.partial, 1), else_=0)),
            func.sum(case((SyncHistory.status == SyncRunStatus.failed, 1), else_=0)),
            func.sum(case((SyncHistory.status == SyncRunStatus.cancelled, 1), else_=0)),
            func.avg(SyncHistory.duration_seconds),
            func.sum(SyncHistory.properties_added),
            func.sum(SyncHistory.properties_updated),
        ).where(SyncHistory.status != SyncRunStatus.running)
        total, ok, partial, failed, cancelled, avg_dur, added, updated = (await self.session.execute(q)).one()

        return {
            "total_syncs": int(total or 0),
            "successful_syncs": int(ok or 0),
            "partial_syncs": int(partial or 0),
            "failed_syncs": int(failed or 0),
            "cancelled_syncs": int(cancelled or 0),
            "average_duration_seconds": round(float(avg_dur or 0.0)),
            "total_properties_added": int(added or 0),
            "total_properties_updated": int(updated or 0),
        }
