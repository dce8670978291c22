# mls_sync/adapters/repos/provider_configs.py
from __future__ import annotations

import json

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ...domain.parsing import utcnow
from ...domain.types import ProviderConfig, ProviderCredentials, ProviderKind, RateLimits
from ...models import ProviderConfiguration


def row_to_config(row: ProviderConfiguration, credentials: ProviderCredentials) -> ProviderConfig:
    rate_limits = None
    if row.rate_limit_requests_per_minute or row.rate_limit_requests_per_hour:
        rate_limits = RateLimits(
            requests_per_minute=row.rate_limit_requests_per_minute,
            requests_per_hour=row.rate_limit_requests_per_hour,
        )

    mapping = json.loads(row.field_mapping_json or "{}")
    return ProviderConfig(
        provider_id=row.provider_id,
        provider_name=row.provider_name,
        provider_type=ProviderKind(row.provider_type),
        login_url=row.login_url,
        credentials=credentials,
        field_mapping={str(k): str(v) for k, v in mapping.items()},
        api_endpoint=row.api_endpoint,
        rate_limits=rate_limits,
        batch_size=row.batch_size,
        timeout_seconds=row.timeout_seconds,
        include_media=row.include_media,
        is_active=row.is_active,
    )


class ProviderConfigRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, provider_id: str) -> ProviderConfiguration | None:
        q = select(ProviderConfiguration).where(ProviderConfiguration.provider_id == provider_id)
        return (await self.session.execute(q)).scalars().first()

    async def get_active(self, provider_id: str) -> ProviderConfiguration | None:
        q = select(ProviderConfiguration).where(
            ProviderConfiguration.provider_id == provider_id,
            ProviderConfiguration.is_active == True,  # noqa: E712
        )
        return (await self.session.execute(q)).scalars().first()

    async def upsert(self, config: ProviderConfig) -> ProviderConfiguration:
        """Credentials are never persisted; they come from a CredentialSource."""
        row = await self.get(config.provider_id)
        if row is None:
            row = ProviderConfiguration(provider_id=config.provider_id)
            self.session.add(row)

        row.provider_name = config.provider_name
        row.provider_type = config.provider_type.value
        row.login_url = config.login_url
        row.api_endpoint = config.api_endpoint
        row.rate_limit_requests_per_minute = config.rate_limits.requests_per_minute if config.rate_limits else None
        row.rate_limit_requests_per_hour = config.rate_limits.requests_per_hour if config.rate_limits else None
        row.field_mapping_json = json.dumps(config.field_mapping)
        row.batch_size = config.batch_size
        row.timeout_seconds = config.timeout_seconds
        row.include_media = config.include_media
        row.is_active = config.is_active
        row.updated_at = utcnow()

        await self.session.flush()
        return row
