# mls_sync/domain/types.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class SyncType(str, Enum):
    full = "full"
    incremental = "incremental"


class SyncRunStatus(str, Enum):
    running = "running"
    success = "success"
    partial = "partial"
    failed = "failed"
    cancelled = "cancelled"


class SyncState(str, Enum):
    """Orchestrator lifecycle within a single run."""

    initializing = "initializing"
    fetching = "fetching"
    processing = "processing"
    finalizing = "finalizing"
    success = "success"
    partial = "partial"
    failed = "failed"
    cancelled = "cancelled"


class ListingStatus(str, Enum):
    active = "Active"
    pending = "Pending"
    sold = "Sold"
    withdrawn = "Withdrawn"
    expired = "Expired"
    unknown = "Unknown"


class MediaKind(str, Enum):
    image = "image"
    video = "video"
    tour_3d = "3d_tour"
    floor_plan = "floor_plan"


class ProviderKind(str, Enum):
    rets = "RETS"
    rest_api = "REST_API"
    mock = "MOCK"


class ErrorType(str, Enum):
    authentication = "authentication"
    network = "network"
    data_validation = "data_validation"
    rate_limit = "rate_limit"
    storage = "storage"
    unknown = "unknown"


@dataclass(frozen=True)
class ProviderCredentials:
    username: str = ""
    password: str = ""
    user_agent: str | None = None


@dataclass(frozen=True)
class RateLimits:
    requests_per_minute: int | None = None
    requests_per_hour: int | None = None


@dataclass(frozen=True)
class ProviderConfig:
    provider_id: str
    provider_name: str
    provider_type: ProviderKind
    login_url: str
    credentials: ProviderCredentials = field(default_factory=ProviderCredentials)
    field_mapping: dict[str, str] = field(default_factory=dict)
    api_endpoint: str | None = None
    rate_limits: RateLimits | None = None
    batch_size: int = 1000
    timeout_seconds: float = 30.0
    include_media: bool = True
    is_active: bool = True

    def snapshot(self) -> dict[str, Any]:
        """JSON-safe view for the run history row (no secrets)."""
        return {
            "provider_type": self.provider_type.value,
            "login_url": self.login_url,
            "api_endpoint": self.api_endpoint,
            "batch_size": self.batch_size,
            "timeout_seconds": self.timeout_seconds,
            "include_media": self.include_media,
            "rate_limits": (
                {
                    "requests_per_minute": self.rate_limits.requests_per_minute,
                    "requests_per_hour": self.rate_limits.requests_per_hour,
                }
                if self.rate_limits
                else None
            ),
        }


@dataclass(frozen=True)
class MediaRef:
    url: str
    kind: MediaKind = MediaKind.image
    order: int = 0
    caption: str | None = None


@dataclass
class ListingFeatures:
    interior: Any = None
    exterior: Any = None
    appliances: list[str] | None = None
    parking: dict[str, Any] | None = None


@dataclass
class ListingRecord:
    external_id: str
    address: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str = "USA"
    property_type: str = "Unknown"
    property_subtype: str | None = None
    status: ListingStatus = ListingStatus.unknown
    price: float | None = None
    original_price: float | None = None
    bedrooms: float | None = None
    bathrooms: float | None = None
    square_feet: float | None = None
    lot_size: float | None = None
    year_built: int | None = None
    description: str | None = None
    remarks: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    neighborhood: str | None = None
    school_district: str | None = None
    listed_date: datetime | None = None
    sold_date: datetime | None = None
    days_on_market: int | None = None
    listing_agent_name: str | None = None
    listing_agent_phone: str | None = None
    listing_agent_email: str | None = None
    listing_office: str | None = None
    features: ListingFeatures = field(default_factory=ListingFeatures)
    media: list[MediaRef] = field(default_factory=list)
    modified_at: datetime | None = None
    # provider payload exactly as received; never parsed downstream
    raw: dict[str, Any] = field(default_factory=dict)
    # set when the row could not be transformed; the run counts it as errored
    transform_error: str | None = None


@dataclass(frozen=True)
class SyncOptions:
    sync_type: SyncType
    modified_since: datetime | None = None
    batch_size: int | None = None
    max_properties: int | None = None
    include_media: bool = False


@dataclass(frozen=True)
class HealthResult:
    healthy: bool
    message: str


@dataclass(frozen=True)
class ProviderMetadata:
    resource_classes: list[str]
    available_fields: list[str]
    protocol_version: str
