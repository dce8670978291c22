"""Exceptions raised by the sync engine."""

from __future__ import annotations

import httpx

from .types import ErrorType


class MlsSyncError(Exception):
    """Base exception for all sync engine errors."""


class ProviderError(MlsSyncError):
    """Raised when an MLS provider call fails."""


class ProviderAuthError(ProviderError):
    """Raised when the provider rejects our credentials."""


class ProviderNetworkError(ProviderError):
    """Raised on timeouts, connection failures and unexpected provider responses."""


class ProviderConfigError(ProviderError):
    """Raised when a provider configuration is unusable (unknown kind, bad field mapping)."""


class ProviderNotConnectedError(ProviderError):
    """Raised when a fetch is attempted before connect()."""


class ListingValidationError(MlsSyncError):
    """Raised when a single listing is missing required fields."""

    def __init__(self, external_id: str | None, missing: list[str]) -> None:
        super().__init__(f"listing {external_id or '<no id>'} missing required fields: {', '.join(missing)}")
        self.external_id = external_id
        self.missing = missing


class ListingTransformError(MlsSyncError):
    """Raised when a provider row could not be turned into a listing at all."""

    def __init__(self, external_id: str | None, reason: str) -> None:
        super().__init__(f"listing {external_id or '<no id>'} could not be transformed: {reason}")
        self.external_id = external_id
        self.reason = reason


class MediaError(MlsSyncError):
    """Raised when one media item cannot be processed."""


class MediaDownloadError(MediaError):
    """Raised on non-2xx, oversize or timed out media downloads."""


class MediaDecodeError(MediaError):
    """Raised when a downloaded payload is not a decodable image."""


class MediaEncodeError(MediaError):
    """Raised when a decoded image cannot be re-encoded (e.g. past the WebP size limit)."""


class StorageError(MlsSyncError):
    """Raised when blob storage rejects an upload."""


class SyncInProgressError(MlsSyncError):
    """Raised when a sync is already running for the provider."""

    def __init__(self, provider_id: str) -> None:
        super().__init__(f"A sync is already running for provider {provider_id}")
        self.provider_id = provider_id


class NoActiveSyncError(MlsSyncError):
    """Raised when cancelling a provider that has no run in flight."""

    def __init__(self, provider_id: str) -> None:
        super().__init__(f"No active sync found for provider {provider_id}")
        self.provider_id = provider_id


class ProviderNotFoundError(MlsSyncError):
    """Raised when no active configuration or status row exists for a provider."""

    def __init__(self, provider_id: str) -> None:
        super().__init__(f"Provider {provider_id} not found")
        self.provider_id = provider_id


class InvalidIntervalError(MlsSyncError):
    """Raised when a sync interval is outside the 1..24 hour range."""


def classify_error(exc: BaseException) -> tuple[ErrorType, bool]:
    """
    Map an exception to (error_type, retryable) for the error log.
    """
    if isinstance(exc, ProviderAuthError):
        return ErrorType.authentication, False
    if isinstance(exc, (ProviderNetworkError, httpx.TimeoutException, httpx.NetworkError)):
        return ErrorType.network, True
    if isinstance(exc, httpx.HTTPStatusError):
        if exc.response.status_code == 429:
            return ErrorType.rate_limit, True
        if exc.response.status_code in (401, 403):
            return ErrorType.authentication, False
        return ErrorType.network, exc.response.status_code >= 500
    if isinstance(exc, (ListingValidationError, ListingTransformError, ValueError, TypeError)):
        return ErrorType.data_validation, False
    if isinstance(exc, (MediaError, StorageError)):
        return ErrorType.storage, True
    return ErrorType.unknown, False
