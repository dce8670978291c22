# mls_sync/adapters/providers/base.py
from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Any

from ...domain.errors import ProviderConfigError
from ...domain.parsing import (
    get_first,
    normalize_status,
    parse_date,
    parse_feature_list,
    parse_price,
    to_float,
    to_int,
    to_str,
)
from ...domain.types import (
    HealthResult,
    ListingFeatures,
    ListingRecord,
    MediaKind,
    MediaRef,
    ProviderConfig,
    ProviderMetadata,
    SyncOptions,
)

log = logging.getLogger(__name__)

# Internal fields a mapping may target. features, media and raw are built separately.
MAPPABLE_FIELDS: frozenset[str] = frozenset(
    f.name
    for f in dataclasses.fields(ListingRecord)
    if f.name not in ("features", "media", "raw", "transform_error")
)

_PRICE_FIELDS = {"price", "original_price"}
_FLOAT_FIELDS = {"bedrooms", "bathrooms", "square_feet", "lot_size", "latitude", "longitude"}
_INT_FIELDS = {"year_built", "days_on_market"}
_DATE_FIELDS = {"listed_date", "sold_date", "modified_at"}

_MEDIA_KINDS = {
    "photo": MediaKind.image,
    "image": MediaKind.image,
    "video": MediaKind.video,
    "virtual tour": MediaKind.tour_3d,
    "3d_tour": MediaKind.tour_3d,
    "floor plan": MediaKind.floor_plan,
    "floorplan": MediaKind.floor_plan,
    "floor_plan": MediaKind.floor_plan,
}


def _present(v: Any) -> bool:
    if v is None:
        return False
    return not (isinstance(v, str) and not v.strip())


class BaseProvider(ABC):
    """
    Contract every MLS data source implements, plus the shared field transformer
    and rate limiter.
    """

    # RESO Data Dictionary names; a provider's configured mapping is laid over this.
    DEFAULT_FIELD_MAPPING: dict[str, str] = {
        "ListingKey": "external_id",
        "ListingId": "external_id",
        "UnparsedAddress": "address",
        "City": "city",
        "StateOrProvince": "state",
        "PostalCode": "postal_code",
        "Country": "country",
        "PropertyType": "property_type",
        "PropertySubType": "property_subtype",
        "StandardStatus": "status",
        "MlsStatus": "status",
        "ListPrice": "price",
        "OriginalListPrice": "original_price",
        "BedroomsTotal": "bedrooms",
        "BathroomsTotalInteger": "bathrooms",
        "LivingArea": "square_feet",
        "LotSizeSquareFeet": "lot_size",
        "YearBuilt": "year_built",
        "PublicRemarks": "description",
        "PrivateRemarks": "remarks",
        "Latitude": "latitude",
        "Longitude": "longitude",
        "SubdivisionName": "neighborhood",
        "HighSchoolDistrict": "school_district",
        "ListingContractDate": "listed_date",
        "CloseDate": "sold_date",
        "DaysOnMarket": "days_on_market",
        "ListAgentFullName": "listing_agent_name",
        "ListAgentDirectPhone": "listing_agent_phone",
        "ListAgentEmail": "listing_agent_email",
        "ListOfficeName": "listing_office",
        "ModificationTimestamp": "modified_at",
    }

    def __init__(self, config: ProviderConfig) -> None:
        self.config = config
        self.connected = False
        self.field_mapping = self._build_field_mapping(config.field_mapping)

        self._rate_lock = asyncio.Lock()
        self._last_request_at: float | None = None
        self._hour_window: deque[float] = deque()

    # -------------------------
    # Contract
    # -------------------------

    @abstractmethod
    async def connect(self) -> None: ...

    @abstractmethod
    async def disconnect(self) -> None: ...

    @abstractmethod
    async def health_check(self) -> HealthResult: ...

    @abstractmethod
    async def fetch_properties(self, options: SyncOptions) -> list[ListingRecord]: ...

    @abstractmethod
    async def fetch_property_by_id(self, external_id: str) -> ListingRecord | None: ...

    @abstractmethod
    async def get_metadata(self) -> ProviderMetadata: ...

    @property
    def is_connected(self) -> bool:
        return self.connected

    @property
    def provider_id(self) -> str:
        return self.config.provider_id

    # -------------------------
    # Field mapping
    # -------------------------

    def _build_field_mapping(self, configured: dict[str, str]) -> dict[str, str]:
        unknown = sorted({v for v in configured.values() if v not in MAPPABLE_FIELDS})
        if unknown:
            raise ProviderConfigError(
                f"{self.config.provider_id}: field mapping targets unknown fields: {', '.join(unknown)}"
            )

        mapping = dict(self.DEFAULT_FIELD_MAPPING)
        mapping.update(configured)

        if "external_id" not in mapping.values():
            raise ProviderConfigError(f"{self.config.provider_id}: field mapping has no source for external_id")
        return mapping

    def _map_fields(self, raw: dict[str, Any]) -> dict[str, Any]:
        """
        Apply the mapping. Configured entries win over RESO defaults for the same target.
        """
        mapped: dict[str, Any] = {}
        configured = self.config.field_mapping

        for ext, internal in self.DEFAULT_FIELD_MAPPING.items():
            if ext in configured or internal in mapped:
                continue
            v = raw.get(ext)
            if _present(v):
                mapped[internal] = v

        for ext, internal in configured.items():
            v = raw.get(ext)
            if _present(v):
                mapped[internal] = v
        return mapped

    # -------------------------
    # Transformation
    # -------------------------

    def transform_property(self, raw: dict[str, Any]) -> ListingRecord:
        """
        Provider row -> ListingRecord. Never raises on bad values: unparsable
        numbers and dates become None.
        """
        mapped = self._map_fields(raw)

        values: dict[str, Any] = {}
        for name, v in mapped.items():
            if name in _PRICE_FIELDS:
                values[name] = parse_price(v)
            elif name in _FLOAT_FIELDS:
                values[name] = to_float(v)
            elif name in _INT_FIELDS:
                values[name] = to_int(v)
            elif name in _DATE_FIELDS:
                values[name] = parse_date(v)
            elif name == "status":
                values[name] = normalize_status(v)
            else:
                values[name] = to_str(v)

        listing = ListingRecord(
            external_id=values.pop("external_id", None) or "",
            country=values.pop("country", None) or "USA",
            property_type=values.pop("property_type", None) or "Unknown",
            raw=dict(raw),
            **values,
        )
        listing.features = self.extract_features(raw)
        listing.media = self.extract_media(raw)
        return listing

    def safe_transform(self, raw: dict[str, Any]) -> ListingRecord:
        """
        transform_property for fetch loops. A row that still blows up comes back
        as a stub with `transform_error` set, so the fetch carries on and the run
        counts that row as errored.
        """
        try:
            return self.transform_property(raw)
        except Exception as e:
            external_id = to_str(self._map_fields(raw).get("external_id")) or ""
            reason = f"{e.__class__.__name__}: {e}"
            log.warning(
                "%s: could not transform listing %s: %s", self.config.provider_id, external_id or "<no id>", reason
            )
            return ListingRecord(external_id=external_id, raw=dict(raw), transform_error=reason)

    def extract_features(self, raw: dict[str, Any]) -> ListingFeatures:
        features = ListingFeatures(
            interior=parse_feature_list(raw.get("InteriorFeatures")),
            exterior=parse_feature_list(raw.get("ExteriorFeatures")),
            appliances=parse_feature_list(raw.get("Appliances")),
        )
        parking_type = parse_feature_list(raw.get("ParkingFeatures"))
        spaces = to_int(get_first(raw, "GarageSpaces", "ParkingTotal"))
        if parking_type is not None or spaces is not None:
            features.parking = {"type": parking_type, "spaces": spaces}
        return features

    def extract_media(self, raw: dict[str, Any]) -> list[MediaRef]:
        """
        RESO-style expanded Media resource: [{"MediaURL": ..., "Order": 1, ...}].
        """
        items = raw.get("Media")
        if not isinstance(items, list):
            return []

        out: list[MediaRef] = []
        for idx, it in enumerate(items):
            if not isinstance(it, dict):
                continue
            url = to_str(get_first(it, "MediaURL", "url", "Url"))
            if not url:
                continue
            category = str(get_first(it, "MediaCategory", "type") or "photo").strip().lower()
            order = to_int(get_first(it, "Order", "order"))
            out.append(
                MediaRef(
                    url=url,
                    kind=_MEDIA_KINDS.get(category, MediaKind.image),
                    order=order if order is not None else idx,
                    caption=to_str(get_first(it, "ShortDescription", "caption")),
                )
            )
        out.sort(key=lambda m: m.order)
        return out

    # -------------------------
    # Rate limiting
    # -------------------------

    async def _enforce_rate_limit(self) -> None:
        """
        Call before every outbound request. Spaces requests by 60/rpm seconds and,
        with an hourly budget, blocks until the one-hour window has room.
        """
        limits = self.config.rate_limits
        if limits is None:
            return

        async with self._rate_lock:
            rpm = limits.requests_per_minute
            if rpm and rpm > 0 and self._last_request_at is not None:
                min_gap = 60.0 / float(rpm)
                wait = (self._last_request_at + min_gap) - time.monotonic()
                if wait > 0:
                    await asyncio.sleep(wait)

            rph = limits.requests_per_hour
            if rph and rph > 0:
                now = time.monotonic()
                while self._hour_window and now - self._hour_window[0] >= 3600.0:
                    self._hour_window.popleft()
                if len(self._hour_window) >= rph:
                    wait = 3600.0 - (now - self._hour_window[0])
                    log.info("provider %s hourly budget exhausted, waiting %.1fs", self.provider_id, wait)
                    await asyncio.sleep(wait)
                    self._hour_window.popleft()
                self._hour_window.append(time.monotonic())

            self._last_request_at = time.monotonic()
