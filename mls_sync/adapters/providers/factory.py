# mls_sync/adapters/providers/factory.py
from __future__ import annotations

from ...domain.errors import ProviderConfigError
from ...domain.types import ProviderConfig, ProviderKind
from .base import BaseProvider
from .mock import MockProvider
from .rets import RetsProvider


def build_provider(config: ProviderConfig) -> BaseProvider:
    """
    Choose an adapter by provider kind. REST_API has no adapter yet.
    """
    if config.provider_type == ProviderKind.rets:
        return RetsProvider(config)
    if config.provider_type == ProviderKind.mock:
        return MockProvider(config)
    raise ProviderConfigError(f"Unsupported provider type: {config.provider_type.value}")
