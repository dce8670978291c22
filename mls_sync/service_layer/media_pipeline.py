# mls_sync/service_layer/media_pipeline.py
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from ..adapters.media.images import ProcessedImage, process_listing_image
from ..config import settings
from ..domain.ports import BlobStorage, MediaRecordCreate, MediaRepo
from ..domain.types import MediaKind, MediaRef

log = logging.getLogger(__name__)

ImageProcessor = Callable[[str], Awaitable[ProcessedImage]]


@dataclass
class MediaSyncResult:
    downloaded: int = 0
    failed: int = 0
    skipped: int = 0


def media_folder(property_id: int) -> str:
    return f"properties/{property_id}"


class MediaPipeline:
    """
    Turns a listing's media references into stored variants plus media records.
    One bad item never fails the listing.
    """

    def __init__(
        self,
        storage: BlobStorage,
        *,
        processor: ImageProcessor | None = None,
        enabled: bool | None = None,
    ) -> None:
        self.storage = storage
        self.processor = processor or process_listing_image
        self.enabled = settings.MEDIA_PROCESSING_ENABLED if enabled is None else enabled

    async def sync_property_media(
        self,
        property_id: int,
        media: list[MediaRef],
        media_repo: MediaRepo,
    ) -> MediaSyncResult:
        result = MediaSyncResult()

        for ref in sorted(media, key=lambda m: m.order):
            if ref.kind != MediaKind.image or not self.enabled:
                await media_repo.create(
                    MediaRecordCreate(
                        property_id=property_id,
                        media_type=ref.kind.value,
                        source_url=ref.url,
                        media_url=ref.url,
                        display_order=ref.order,
                        caption=ref.caption,
                        processing_status="skipped" if ref.kind != MediaKind.image else "pending",
                    )
                )
                result.skipped += 1
                continue

            try:
                record = await self._process_image(property_id, ref)
            except Exception as e:
                log.warning("media %s for property %s failed: %s", ref.url, property_id, e)
                await media_repo.create(
                    MediaRecordCreate(
                        property_id=property_id,
                        media_type=ref.kind.value,
                        source_url=ref.url,
                        media_url=ref.url,
                        display_order=ref.order,
                        caption=ref.caption,
                        processing_status="failed",
                        processing_error=str(e),
                    )
                )
                result.failed += 1
                continue

            await media_repo.create(record)
            result.downloaded += 1

        return result

    async def _process_image(self, property_id: int, ref: MediaRef) -> MediaRecordCreate:
        processed = await self.processor(ref.url)
        folder = media_folder(property_id)

        original = await self.storage.upload(
            processed.original.data,
            folder=folder,
            filename=f"image-{ref.order}-original.{processed.original.extension}",
            content_type=processed.original.content_type,
        )

        urls: dict[str, str] = {}
        for name, variant in processed.variants.items():
            uploaded = await self.storage.upload(
                variant.data,
                folder=folder,
                filename=f"image-{ref.order}-{name}.{variant.extension}",
                content_type=variant.content_type,
            )
            urls[name] = uploaded.public_url

        return MediaRecordCreate(
            property_id=property_id,
            media_type=MediaKind.image.value,
            source_url=ref.url,
            media_url=original.public_url,
            display_order=ref.order,
            caption=ref.caption,
            thumbnail_url=urls.get("thumbnail"),
            medium_url=urls.get("medium"),
            large_url=urls.get("large"),
            width=processed.original.width,
            height=processed.original.height,
            file_size=processed.original.size,
            metadata={
                "variants": {
                    name: {"width": v.width, "height": v.height, "size": v.size}
                    for name, v in processed.variants.items()
                },
            },
            processing_status="completed",
        )
