# mls_sync/adapters/repos/sync_errors.py
from __future__ import annotations

import json
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ...domain.errors import classify_error
from ...models import SyncError


class SyncErrorRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def log(
        self,
        *,
        provider_id: str,
        sync_id: str | None,
        exc: BaseException,
        listing_id: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> SyncError:
        error_type, retryable = classify_error(exc)
        row = SyncError(
            sync_id=sync_id,
            provider_id=provider_id,
            error_type=error_type.value,
            error_message=str(exc) or exc.__class__.__name__,
            error_context_json=json.dumps(context, default=str) if context else None,
            mls_listing_id=listing_id,
            retryable=retryable,
            resolved=False,
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def list_for_provider(self, provider_id: str, limit: int = 100) -> list[SyncError]:
        q = (
            select(SyncError)
            .where(SyncError.provider_id == provider_id)
            .order_by(SyncError.created_at.desc(), SyncError.id.desc())
            .limit(limit)
        )
        return list((await self.session.execute(q)).scalars().all())

    async def list_for_sync(self, sync_id: str) -> list[SyncError]:
        q = select(SyncError).where(SyncError.sync_id == sync_id).order_by(SyncError.id.asc())
        return list((await self.session.execute(q)).scalars().all())
