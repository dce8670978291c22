import time

import pytest

from conftest import make_config, raw_listing
from mls_sync.adapters.providers.mock import MockProvider
from mls_sync.domain.types import RateLimits, SyncOptions, SyncType


@pytest.mark.asyncio
async def test_requests_per_minute_spaces_calls():
    provider = MockProvider(
        make_config(rate_limits=RateLimits(requests_per_minute=60)),
        listings=[raw_listing(1)],
    )
    await provider.connect()
    opts = SyncOptions(sync_type=SyncType.full)

    t0 = time.monotonic()
    await provider.fetch_properties(opts)
    await provider.fetch_properties(opts)
    elapsed = time.monotonic() - t0

    assert elapsed >= 0.95


@pytest.mark.asyncio
async def test_no_limits_means_no_waiting():
    provider = MockProvider(make_config(), listings=[raw_listing(1)])
    await provider.connect()
    opts = SyncOptions(sync_type=SyncType.full)

    t0 = time.monotonic()
    for _ in range(5):
        await provider.fetch_properties(opts)

    assert time.monotonic() - t0 < 0.5
