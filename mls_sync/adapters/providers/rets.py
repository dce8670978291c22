# mls_sync/adapters/providers/rets.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx

from ...config import settings
from ...domain.errors import ProviderError, ProviderNotConnectedError
from ...domain.parsing import utcnow
from ...domain.types import (
    HealthResult,
    ListingRecord,
    MediaKind,
    MediaRef,
    ProviderConfig,
    ProviderMetadata,
    SyncOptions,
    SyncType,
)
from ..clients.rets import RetsClient
from .base import BaseProvider

log = logging.getLogger(__name__)

# RESO lookup values for the full-sync working set (Sold is "Closed" on the wire)
FULL_SYNC_QUERY = "(StandardStatus=|Active,Pending,Closed)"


def format_rets_timestamp(dt: datetime) -> str:
    return dt.replace(microsecond=0).isoformat()


class RetsProvider(BaseProvider):
    def __init__(
        self,
        config: ProviderConfig,
        *,
        resource: str = "Property",
        search_class: str = "ResidentialProperty",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(config)
        self.resource = resource
        self.search_class = search_class
        self._transport = transport
        self.client: RetsClient | None = None

    async def connect(self) -> None:
        creds = self.config.credentials
        client = RetsClient(
            login_url=self.config.login_url,
            username=creds.username,
            password=creds.password,
            user_agent=creds.user_agent,
            timeout_s=self.config.timeout_seconds,
            transport=self._transport,
        )
        await self._enforce_rate_limit()
        await client.login()

        self.client = client
        self.connected = True
        log.info("connected to RETS provider %s", self.config.provider_name)

    async def disconnect(self) -> None:
        client, self.client = self.client, None
        self.connected = False
        if client is not None:
            await client.logout()
            log.info("disconnected from RETS provider %s", self.config.provider_name)

    async def health_check(self) -> HealthResult:
        if self.client is None:
            return HealthResult(healthy=False, message="Not connected")
        try:
            await self._enforce_rate_limit()
            await self.client.get_metadata_classes(self.resource)
        except ProviderError as e:
            return HealthResult(healthy=False, message=f"Health check failed: {e}")
        return HealthResult(healthy=True, message="Connection healthy")

    async def fetch_properties(self, options: SyncOptions) -> list[ListingRecord]:
        client = self._require_client()

        if options.sync_type == SyncType.incremental and options.modified_since is not None:
            query = f"(ModificationTimestamp={format_rets_timestamp(options.modified_since)}+)"
        else:
            query = FULL_SYNC_QUERY

        page_size = options.batch_size or self.config.batch_size
        cap = options.max_properties or page_size

        rows: list[dict[str, Any]] = []
        offset = 1  # RETS offsets are 1-based
        while len(rows) < cap:
            await self._enforce_rate_limit()
            page = await client.search(
                search_type=self.resource,
                search_class=self.search_class,
                query=query,
                limit=min(page_size, cap - len(rows)),
                offset=offset if offset > 1 else None,
            )
            rows.extend(page.rows)
            offset += len(page.rows)

            if not page.rows or not page.max_rows:
                break
            if page.count is not None and offset > page.count:
                break

        listings: list[ListingRecord] = []
        for row in rows[:cap]:
            listing = self.safe_transform(row)
            # DMQL `+` is inclusive; the contract is strictly newer than the watermark
            if (
                options.sync_type == SyncType.incremental
                and options.modified_since is not None
                and listing.modified_at is not None
                and listing.modified_at <= options.modified_since
            ):
                continue
            listings.append(listing)

        if options.include_media:
            for listing in listings:
                if not listing.media and listing.external_id and listing.transform_error is None:
                    listing.media = await self._fetch_photo_refs(listing.external_id)
        else:
            for listing in listings:
                listing.media = []

        log.info("RETS %s returned %s listings (query=%s)", self.provider_id, len(listings), query)
        return listings

    async def fetch_property_by_id(self, external_id: str) -> ListingRecord | None:
        client = self._require_client()

        await self._enforce_rate_limit()
        page = await client.search(
            search_type=self.resource,
            search_class=self.search_class,
            query=f"({self._external_id_field()}={external_id})",
            limit=1,
        )
        if not page.rows:
            return None
        return self.transform_property(page.rows[0])

    async def get_metadata(self) -> ProviderMetadata:
        client = self._require_client()

        await self._enforce_rate_limit()
        classes = await client.get_metadata_classes(self.resource)
        return ProviderMetadata(
            resource_classes=[c.get("StandardName") or c.get("ClassName") or "" for c in classes],
            available_fields=sorted(self.field_mapping),
            protocol_version=settings.MLS_RETS_VERSION,
        )

    def transform_property(self, raw: dict[str, Any]) -> ListingRecord:
        listing = super().transform_property(raw)

        # "123 Main St, Seattle, WA 98101"
        unparsed = raw.get("UnparsedAddress")
        if isinstance(unparsed, str) and "," in unparsed:
            parts = [p.strip() for p in unparsed.split(",")]
            listing.address = parts[0] or listing.address
            if len(parts) > 1 and parts[1]:
                listing.city = parts[1]
            if len(parts) > 2 and parts[2]:
                state_zip = parts[2].split()
                listing.state = state_zip[0]
                if len(state_zip) > 1 and not listing.postal_code:
                    listing.postal_code = state_zip[1]

        if listing.days_on_market is None and listing.listed_date is not None:
            listing.days_on_market = max(0, (utcnow() - listing.listed_date).days)

        return listing

    # -------------------------
    # Internals
    # -------------------------

    def _require_client(self) -> RetsClient:
        if self.client is None or not self.connected:
            raise ProviderNotConnectedError(f"RETS provider {self.provider_id} is not connected")
        return self.client

    def _external_id_field(self) -> str:
        for ext, internal in self.config.field_mapping.items():
            if internal == "external_id":
                return ext
        return "ListingKey"

    async def _fetch_photo_refs(self, external_id: str) -> list[MediaRef]:
        client = self._require_client()
        await self._enforce_rate_limit()
        urls = await client.get_photo_locations(external_id, self.resource)
        return [MediaRef(url=u, kind=MediaKind.image, order=i) for i, u in enumerate(urls)]
