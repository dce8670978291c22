# mls_sync/adapters/storage/local.py
from __future__ import annotations

import asyncio
import logging
import os

from ...config import settings
from ...domain.errors import StorageError
from ...domain.ports import UploadResult

log = logging.getLogger(__name__)


def _ensure_dir(p: str) -> None:
    os.makedirs(p, exist_ok=True)


class LocalBlobStorage:
    """
    Blob store on the local filesystem, served from MEDIA_BASE_URL.
    Object keys are `{folder}/{filename}`.
    """

    def __init__(
        self,
        root: str | None = None,
        *,
        base_url: str | None = None,
        cdn_base_url: str | None = None,
    ) -> None:
        self.root = os.path.abspath(root or settings.MEDIA_ROOT)
        self.base_url = (base_url or settings.MEDIA_BASE_URL).rstrip("/")
        cdn = cdn_base_url if cdn_base_url is not None else settings.MEDIA_CDN_BASE_URL
        self.cdn_base_url = cdn.rstrip("/") if cdn else None

    def path_for(self, folder: str, filename: str) -> str:
        key = f"{folder.strip('/')}/{filename}"
        path = os.path.abspath(os.path.join(self.root, key))
        if not path.startswith(self.root + os.sep):
            raise StorageError(f"object key escapes storage root: {key}")
        return path

    async def upload(
        self,
        data: bytes,
        *,
        folder: str,
        filename: str,
        content_type: str,
        public: bool = True,
    ) -> UploadResult:
        path = self.path_for(folder, filename)

        def _write() -> None:
            _ensure_dir(os.path.dirname(path))
            with open(path, "wb") as f:
                f.write(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise StorageError(f"failed to store {folder}/{filename}: {e}") from e

        key = f"{folder.strip('/')}/{filename}"
        log.debug("stored %s (%s, %s bytes)", key, content_type, len(data))
        return UploadResult(
            url=f"{self.base_url}/{key}",
            cdn_url=f"{self.cdn_base_url}/{key}" if (public and self.cdn_base_url) else None,
        )
