from datetime import datetime

import pytest

from conftest import make_config, raw_listing
from mls_sync.adapters.providers.mock import MockProvider
from mls_sync.domain.errors import ProviderNotConnectedError
from mls_sync.domain.types import SyncOptions, SyncType


def test_generated_listings_are_deterministic_per_seed():
    a = MockProvider(make_config(), listing_count=10, seed=7)
    b = MockProvider(make_config(), listing_count=10, seed=7)

    ids = [x.external_id for x in a.all_listings()]
    assert ids[0] == "MOCK000001"
    assert len(ids) == 10
    assert [x.price for x in a.all_listings()] == [x.price for x in b.all_listings()]
    assert all(x.media for x in a.all_listings())


@pytest.mark.asyncio
async def test_fetch_requires_connect():
    provider = MockProvider(make_config(), listings=[raw_listing(1)])
    with pytest.raises(ProviderNotConnectedError):
        await provider.fetch_properties(SyncOptions(sync_type=SyncType.full))

    await provider.connect()
    assert (await provider.health_check()).healthy
    await provider.disconnect()
    assert not provider.is_connected


@pytest.mark.asyncio
async def test_full_fetch_excludes_withdrawn_and_expired():
    provider = MockProvider(
        make_config(),
        listings=[
            raw_listing(1),
            raw_listing(2, StandardStatus="CAN"),
            raw_listing(3, StandardStatus="EXP"),
            raw_listing(4, StandardStatus="SLD"),
        ],
    )
    await provider.connect()
    out = await provider.fetch_properties(SyncOptions(sync_type=SyncType.full))

    assert [x.external_id for x in out] == ["L0001", "L0004"]


@pytest.mark.asyncio
async def test_incremental_fetch_is_strictly_after_watermark():
    provider = MockProvider(
        make_config(),
        listings=[
            raw_listing(1, ModificationTimestamp="2024-03-01T12:00:00"),
            raw_listing(2, ModificationTimestamp="2024-03-01T12:00:01"),
            raw_listing(3, ModificationTimestamp=None),
        ],
    )
    await provider.connect()
    out = await provider.fetch_properties(
        SyncOptions(sync_type=SyncType.incremental, modified_since=datetime(2024, 3, 1, 12, 0))
    )

    assert [x.external_id for x in out] == ["L0002"]


@pytest.mark.asyncio
async def test_fetch_caps_and_media_flag():
    media = [{"MediaURL": "https://img.test/a.jpg", "Order": 0}]
    provider = MockProvider(make_config(), listings=[raw_listing(i, Media=media) for i in range(1, 6)])
    await provider.connect()

    capped = await provider.fetch_properties(SyncOptions(sync_type=SyncType.full, max_properties=2))
    assert len(capped) == 2
    assert capped[0].media == []

    batch = await provider.fetch_properties(SyncOptions(sync_type=SyncType.full, batch_size=3, include_media=True))
    assert len(batch) == 3
    assert batch[0].media[0].url == "https://img.test/a.jpg"
    assert provider.request_count == 2


@pytest.mark.asyncio
async def test_update_listing_bumps_modification_timestamp():
    provider = MockProvider(make_config(), listings=[raw_listing(1)])
    provider.update_listing("L0001", ListPrice=1)
    await provider.connect()

    listing = await provider.fetch_property_by_id("L0001")
    assert listing is not None
    assert listing.price == 1.0
    assert listing.modified_at > datetime(2024, 3, 1, 12, 0)

    provider.remove_listing("L0001")
    assert await provider.fetch_property_by_id("L0001") is None
