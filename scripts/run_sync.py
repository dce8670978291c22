from __future__ import annotations

import argparse
import asyncio
import json

from mls_sync.adapters.storage.local import LocalBlobStorage
from mls_sync.db import create_all
from mls_sync.logging_config import configure_logging
from mls_sync.service_layer.admin import SyncCoordinator
from mls_sync.service_layer.media_pipeline import MediaPipeline


async def main() -> None:
    parser = argparse.ArgumentParser(description="Run one sync for a registered provider and print the result")
    parser.add_argument("provider_id")
    parser.add_argument("--type", dest="sync_type", choices=["full", "incremental"], default="incremental")
    parser.add_argument("--max-properties", type=int, default=None)
    args = parser.parse_args()

    configure_logging()
    await create_all()

    coordinator = SyncCoordinator(media_pipeline=MediaPipeline(LocalBlobStorage()))
    result = await coordinator.run_sync(
        args.provider_id,
        args.sync_type,
        "cli",
        max_properties=args.max_properties,
    )
    print(json.dumps(result.as_dict(), indent=2))


if __name__ == "__main__":
    asyncio.run(main())
