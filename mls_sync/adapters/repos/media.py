# mls_sync/adapters/repos/media.py
from __future__ import annotations

import json

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ...domain.ports import MediaRecordCreate
from ...models import PropertyMedia


class MediaRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, record: MediaRecordCreate) -> PropertyMedia:
        row = PropertyMedia(
            property_id=record.property_id,
            media_type=record.media_type,
            source_url=record.source_url,
            media_url=record.media_url,
            thumbnail_url=record.thumbnail_url,
            medium_url=record.medium_url,
            large_url=record.large_url,
            display_order=record.display_order,
            caption=record.caption,
            width=record.width,
            height=record.height,
            file_size=record.file_size,
            metadata_json=json.dumps(record.metadata) if record.metadata else None,
            processing_status=record.processing_status,
            processing_error=record.processing_error,
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def list_by_property_id(self, property_id: int) -> list[PropertyMedia]:
        q = (
            select(PropertyMedia)
            .where(PropertyMedia.property_id == property_id)
            .order_by(PropertyMedia.display_order.asc(), PropertyMedia.id.asc())
        )
        return list((await self.session.execute(q)).scalars().all())
