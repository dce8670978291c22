# mls_sync/adapters/providers/mock.py
from __future__ import annotations

import asyncio
import logging
import random
from datetime import timedelta
from typing import Any

from ...config import settings
from ...domain.errors import ProviderNotConnectedError
from ...domain.parsing import utcnow
from ...domain.types import (
    HealthResult,
    ListingRecord,
    ListingStatus,
    ProviderConfig,
    ProviderMetadata,
    SyncOptions,
    SyncType,
)
from .base import BaseProvider

log = logging.getLogger(__name__)

_CITIES = ["Seattle", "Bellevue", "Redmond", "Kirkland", "Tacoma"]
_TYPES = ["House", "Condo", "Townhouse"]
_STATUS_CODES = ["Active", "ACT", "Pending", "PND", "Sold", "SLD"]
_STREETS = ["Main St", "Oak Ave", "Pine Rd", "Maple Dr", "Cedar Ln"]

# Withdrawn/expired listings are outside a full sync's working set.
_WORKING_SET = {ListingStatus.active, ListingStatus.pending, ListingStatus.sold, ListingStatus.unknown}


def _selected(listing: ListingRecord, options: SyncOptions) -> bool:
    if options.sync_type == SyncType.incremental:
        return options.modified_since is None or (
            listing.modified_at is not None and listing.modified_at > options.modified_since
        )
    return listing.status in _WORKING_SET


class MockProvider(BaseProvider):
    """
    Offline provider for development and tests.

    Serves either caller-supplied raw rows (RESO-shaped dicts) or `listing_count`
    generated rows. Rows go through the same transformer as a live provider.
    """

    def __init__(
        self,
        config: ProviderConfig,
        *,
        listings: list[dict[str, Any]] | None = None,
        listing_count: int | None = None,
        seed: int | None = None,
        latency_s: float | None = None,
    ) -> None:
        super().__init__(config)
        self._rng = random.Random(seed)
        self.latency_s = settings.MOCK_MLS_LATENCY_S if latency_s is None else latency_s
        self.request_count = 0

        self._rows: dict[str, dict[str, Any]] = {}
        if listings is not None:
            for row in listings:
                self.add_listing(row)
        else:
            count = settings.MOCK_MLS_LISTING_COUNT if listing_count is None else listing_count
            for i in range(1, count + 1):
                self.add_listing(self._generate_row(i))
            log.info("mock provider %s generated %s listings", self.provider_id, count)

    # -------------------------
    # Contract
    # -------------------------

    async def connect(self) -> None:
        await self._simulate_latency()
        self.connected = True
        log.info("connected to mock MLS provider %s", self.config.provider_name)

    async def disconnect(self) -> None:
        self.connected = False

    async def health_check(self) -> HealthResult:
        return HealthResult(
            healthy=self.connected,
            message="Mock provider healthy" if self.connected else "Not connected",
        )

    async def fetch_properties(self, options: SyncOptions) -> list[ListingRecord]:
        self._require_connected()
        await self._enforce_rate_limit()
        await self._simulate_latency()
        self.request_count += 1
        # disconnect() while we were "on the wire" (cancellation)
        self._require_connected()

        out: list[ListingRecord] = []
        for row in self._rows.values():
            listing = self.safe_transform(row)
            # untransformable rows go through so the run can count them
            if listing.transform_error is None and not _selected(listing, options):
                continue
            if not options.include_media:
                listing.media = []
            out.append(listing)

        cap = options.max_properties or options.batch_size
        if cap:
            out = out[:cap]
        return out

    async def fetch_property_by_id(self, external_id: str) -> ListingRecord | None:
        self._require_connected()
        await self._enforce_rate_limit()
        self.request_count += 1

        row = self._rows.get(external_id)
        return self.transform_property(row) if row is not None else None

    async def get_metadata(self) -> ProviderMetadata:
        return ProviderMetadata(
            resource_classes=["ResidentialProperty", "CommercialProperty"],
            available_fields=sorted(self.field_mapping),
            protocol_version="Mock/1.0.0",
        )

    # -------------------------
    # Test helpers
    # -------------------------

    def add_listing(self, row: dict[str, Any]) -> None:
        key = self._row_key(row)
        self._rows[key] = dict(row)

    def update_listing(self, external_id: str, **changes: Any) -> None:
        row = self._rows.get(external_id)
        if row is None:
            return
        row.update(changes)
        row["ModificationTimestamp"] = utcnow().isoformat()

    def remove_listing(self, external_id: str) -> None:
        self._rows.pop(external_id, None)

    def all_listings(self) -> list[ListingRecord]:
        return [self.transform_property(r) for r in self._rows.values()]

    # -------------------------
    # Internals
    # -------------------------

    def _require_connected(self) -> None:
        if not self.connected:
            raise ProviderNotConnectedError(f"mock provider {self.provider_id} is not connected")

    async def _simulate_latency(self) -> None:
        if self.latency_s > 0:
            await asyncio.sleep(self.latency_s)

    def _row_key(self, row: dict[str, Any]) -> str:
        for ext, internal in self.field_mapping.items():
            if internal == "external_id" and row.get(ext):
                return str(row[ext])
        # rows without an id are still served (and rejected downstream)
        return f"__no_id__{len(self._rows)}"

    def _generate_row(self, i: int) -> dict[str, Any]:
        rng = self._rng
        city = rng.choice(_CITIES)
        ptype = rng.choice(_TYPES)
        status = rng.choice(_STATUS_CODES)
        street = rng.choice(_STREETS)
        listing_key = f"MOCK{i:06d}"
        now = utcnow()

        price = 300000 + i * 10000 + rng.randint(0, 100000)
        listed = now - timedelta(days=i)

        return {
            "ListingKey": listing_key,
            "UnparsedAddress": f"{1000 + i} {street}",
            "City": city,
            "StateOrProvince": "WA",
            "PostalCode": f"981{i % 100:02d}",
            "Country": "USA",
            "PropertyType": ptype,
            "PropertySubType": "Single Family" if ptype == "House" else None,
            "StandardStatus": status,
            # provider sends a mix of numbers and currency strings
            "ListPrice": f"${price:,}" if i % 3 == 0 else price,
            "OriginalListPrice": price + rng.randint(0, 50000),
            "BedroomsTotal": 2 + rng.randint(0, 3),
            "BathroomsTotalInteger": 1 + rng.randint(0, 2),
            "LivingArea": 1200 + i * 50 + rng.randint(0, 800),
            "LotSizeSquareFeet": 5000 + rng.randint(0, 5000),
            "YearBuilt": 1990 + rng.randint(0, 30),
            "PublicRemarks": f"Beautiful {ptype.lower()} in {city}.",
            "PrivateRemarks": f"Agent remarks for property {i}",
            "Latitude": round(47.6 + rng.random() * 0.5, 6),
            "Longitude": round(-122.3 + rng.random() * 0.5, 6),
            "SubdivisionName": f"{city} Heights",
            "HighSchoolDistrict": f"{city} School District",
            "ListingContractDate": listed.strftime("%m/%d/%Y"),
            "CloseDate": now.isoformat() if status in ("Sold", "SLD") else None,
            "DaysOnMarket": i,
            "ListAgentFullName": f"Agent {i % 10}",
            "ListAgentDirectPhone": f"+1-555-01{i % 100:02d}",
            "ListAgentEmail": f"agent{i % 10}@realty.example",
            "ListOfficeName": f"Realty Office {i % 5}",
            "InteriorFeatures": "Hardwood Floors, Fireplace" if rng.random() > 0.5 else "Updated Kitchen",
            "ExteriorFeatures": "Deck, Fenced Yard" if rng.random() > 0.5 else None,
            "Appliances": "Dishwasher, Refrigerator, Microwave",
            "ParkingFeatures": "Garage",
            "GarageSpaces": 1 + rng.randint(0, 1),
            "ModificationTimestamp": (now - timedelta(seconds=rng.randint(60, 7 * 86400))).isoformat(),
            "Media": [
                {
                    "MediaURL": f"https://picsum.photos/seed/{listing_key}-{n}/1600/1200",
                    "Order": n,
                    "MediaCategory": "Photo",
                    "ShortDescription": f"Property {i} - Image {n + 1}",
                }
                for n in range(3 + rng.randint(0, 4))
            ],
        }
