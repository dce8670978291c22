# mls_sync/domain/ports.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from .types import ListingRecord, ProviderCredentials


@dataclass(frozen=True)
class UploadResult:
    url: str
    cdn_url: str | None = None

    @property
    def public_url(self) -> str:
        return self.cdn_url or self.url


@dataclass
class MediaRecordCreate:
    property_id: int
    media_type: str
    source_url: str
    media_url: str
    display_order: int
    caption: str | None = None
    thumbnail_url: str | None = None
    medium_url: str | None = None
    large_url: str | None = None
    width: int | None = None
    height: int | None = None
    file_size: int | None = None
    metadata: dict[str, Any] | None = None
    processing_status: str = "pending"
    processing_error: str | None = None


class ListingRow(Protocol):
    id: int


class PropertyRepo(Protocol):
    async def find_by_external_id(self, external_id: str, provider_id: str) -> ListingRow | None: ...

    async def create(self, listing: ListingRecord, provider_id: str) -> ListingRow: ...

    async def update(self, internal_id: int, fields: dict[str, Any]) -> ListingRow | None: ...


class MediaRepo(Protocol):
    async def create(self, record: MediaRecordCreate) -> Any: ...

    async def list_by_property_id(self, property_id: int) -> list[Any]: ...


class BlobStorage(Protocol):
    async def upload(
        self,
        data: bytes,
        *,
        folder: str,
        filename: str,
        content_type: str,
        public: bool = True,
    ) -> UploadResult: ...


class CredentialSource(Protocol):
    def resolve(self, provider_id: str) -> ProviderCredentials: ...
