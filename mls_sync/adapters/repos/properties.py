# mls_sync/adapters/repos/properties.py
from __future__ import annotations

import json
from enum import Enum
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ...domain.parsing import utcnow
from ...domain.types import ListingFeatures, ListingRecord
from ...models import Property

# ListingRecord fields that map 1:1 onto Property columns
_DIRECT_COLUMNS = (
    "address",
    "city",
    "state",
    "postal_code",
    "country",
    "property_type",
    "property_subtype",
    "status",
    "price",
    "original_price",
    "bedrooms",
    "bathrooms",
    "square_feet",
    "lot_size",
    "year_built",
    "description",
    "remarks",
    "latitude",
    "longitude",
    "neighborhood",
    "school_district",
    "listed_date",
    "sold_date",
    "days_on_market",
    "listing_agent_name",
    "listing_agent_phone",
    "listing_agent_email",
    "listing_office",
)


def _dumps(v: Any) -> str | None:
    if v is None:
        return None
    return json.dumps(v, default=str)


def _column_value(v: Any) -> Any:
    return v.value if isinstance(v, Enum) else v


class PropertyRepository:
    """
    Listing persistence keyed by the natural key (mls_listing_id, mls_provider).
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, internal_id: int) -> Property | None:
        return await self.session.get(Property, internal_id)

    async def find_by_external_id(self, external_id: str, provider_id: str) -> Property | None:
        q = select(Property).where(
            Property.mls_listing_id == external_id,
            Property.mls_provider == provider_id,
        )
        return (await self.session.execute(q)).scalars().first()

    async def create(self, listing: ListingRecord, provider_id: str) -> Property:
        prop = Property(
            mls_listing_id=listing.external_id,
            mls_provider=provider_id,
            sync_status="synced",
            last_synced_at=utcnow(),
        )
        fields: dict[str, Any] = {name: getattr(listing, name) for name in _DIRECT_COLUMNS}
        fields["features"] = listing.features
        fields["raw"] = listing.raw
        self._apply(prop, fields)

        self.session.add(prop)
        await self.session.flush()
        return prop

    async def update(self, internal_id: int, fields: dict[str, Any]) -> Property | None:
        """
        `fields` uses ListingRecord names plus `features`, `raw`, `last_synced_at`
        and `sync_status`. Unknown names are ignored.
        """
        prop = await self.get(internal_id)
        if prop is None:
            return None
        self._apply(prop, fields)
        prop.updated_at = utcnow()
        await self.session.flush()
        return prop

    async def count_by_provider(self, provider_id: str) -> int:
        q = select(func.count()).select_from(Property).where(Property.mls_provider == provider_id)
        return int((await self.session.execute(q)).scalar_one())

    def _apply(self, prop: Property, fields: dict[str, Any]) -> None:
        for name, v in fields.items():
            if name in _DIRECT_COLUMNS or name in ("last_synced_at", "sync_status"):
                setattr(prop, name, _column_value(v))
            elif name == "features":
                feats: ListingFeatures = v or ListingFeatures()
                prop.interior_features_json = _dumps(feats.interior)
                prop.exterior_features_json = _dumps(feats.exterior)
                prop.appliances_json = _dumps(feats.appliances)
                prop.parking_features_json = _dumps(feats.parking)
            elif name == "raw":
                prop.mls_data_raw = _dumps(v)
