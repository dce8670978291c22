# mls_sync/service_layer/credentials.py
from __future__ import annotations

import os
import re
from collections.abc import Mapping

from ..config import settings
from ..domain.types import ProviderCredentials


def env_prefix(provider_id: str) -> str:
    """`crmls-west` -> `MLS_CRMLS_WEST`"""
    return "MLS_" + re.sub(r"[^A-Z0-9]+", "_", provider_id.upper()).strip("_")


class EnvCredentialSource:
    """
    Reads MLS_<PROVIDER_ID>_USERNAME / _PASSWORD / _USER_AGENT.
    Missing values resolve to empty strings; the provider's login rejects them.
    """

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self.environ = environ if environ is not None else os.environ

    def resolve(self, provider_id: str) -> ProviderCredentials:
        prefix = env_prefix(provider_id)
        return ProviderCredentials(
            username=self.environ.get(f"{prefix}_USERNAME", ""),
            password=self.environ.get(f"{prefix}_PASSWORD", ""),
            user_agent=self.environ.get(f"{prefix}_USER_AGENT") or settings.MLS_USER_AGENT,
        )


class StaticCredentialSource:
    def __init__(self, credentials: Mapping[str, ProviderCredentials] | None = None) -> None:
        self.credentials = dict(credentials or {})

    def resolve(self, provider_id: str) -> ProviderCredentials:
        return self.credentials.get(provider_id, ProviderCredentials())
