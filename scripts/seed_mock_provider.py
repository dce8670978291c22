from __future__ import annotations

import argparse
import asyncio

from mls_sync.db import create_all
from mls_sync.domain.types import ProviderConfig, ProviderKind, RateLimits
from mls_sync.logging_config import configure_logging
from mls_sync.service_layer.admin import SyncCoordinator


async def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--provider-id", default="mock-mls")
    parser.add_argument("--name", default="Mock MLS (dev)")
    parser.add_argument("--interval-hours", type=int, default=4)
    parser.add_argument("--no-media", action="store_true", help="Skip media processing for this provider")
    parser.add_argument("--disabled", action="store_true", help="Register with scheduled syncs turned off")
    args = parser.parse_args()

    configure_logging()
    await create_all()

    coordinator = SyncCoordinator()
    await coordinator.register_provider(
        ProviderConfig(
            provider_id=args.provider_id,
            provider_name=args.name,
            provider_type=ProviderKind.mock,
            login_url="mock://localhost",
            rate_limits=RateLimits(requests_per_minute=60),
            include_media=not args.no_media,
        )
    )
    await coordinator.set_interval(args.provider_id, args.interval_hours)
    if args.disabled:
        await coordinator.toggle_enabled(args.provider_id, False)

    print(f"Seeded provider {args.provider_id}. interval={args.interval_hours}h enabled={not args.disabled}")


if __name__ == "__main__":
    asyncio.run(main())
