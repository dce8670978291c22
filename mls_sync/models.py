# mls_sync/models.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .domain.parsing import utcnow
from .domain.types import SyncRunStatus


class Base(DeclarativeBase):
    pass


# -----------------------------
# Listings (property repository collaborator)
# -----------------------------
class Property(Base):
    __tablename__ = "properties"
    __table_args__ = (
        UniqueConstraint("mls_listing_id", "mls_provider", name="uq_property_mls_natural_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    mls_listing_id: Mapped[str] = mapped_column(String(100), index=True)
    mls_provider: Mapped[str] = mapped_column(String(100), index=True)

    address: Mapped[str] = mapped_column(String(255))
    city: Mapped[str] = mapped_column(String(100))
    state: Mapped[str] = mapped_column(String(50))
    postal_code: Mapped[str] = mapped_column(String(20))
    country: Mapped[str] = mapped_column(String(50), default="USA")

    property_type: Mapped[str] = mapped_column(String(60), default="Unknown")
    property_subtype: Mapped[str | None] = mapped_column(String(60), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="Unknown", index=True)

    price: Mapped[float | None] = mapped_column(Float, nullable=True)
    original_price: Mapped[float | None] = mapped_column(Float, nullable=True)

    bedrooms: Mapped[float | None] = mapped_column(Float, nullable=True)
    bathrooms: Mapped[float | None] = mapped_column(Float, nullable=True)
    square_feet: Mapped[float | None] = mapped_column(Float, nullable=True)
    lot_size: Mapped[float | None] = mapped_column(Float, nullable=True)
    year_built: Mapped[int | None] = mapped_column(Integer, nullable=True)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    neighborhood: Mapped[str | None] = mapped_column(String(120), nullable=True)
    school_district: Mapped[str | None] = mapped_column(String(120), nullable=True)

    listed_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    sold_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    days_on_market: Mapped[int | None] = mapped_column(Integer, nullable=True)

    listing_agent_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    listing_agent_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    listing_agent_email: Mapped[str | None] = mapped_column(String(200), nullable=True)
    listing_office: Mapped[str | None] = mapped_column(String(200), nullable=True)

    # feature bag, JSON text
    interior_features_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    exterior_features_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    appliances_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    parking_features_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    # provider payload as received (audit/debug replay only)
    mls_data_raw: Mapped[str | None] = mapped_column(Text, nullable=True)

    sync_status: Mapped[str] = mapped_column(String(20), default="synced")
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class PropertyMedia(Base):
    __tablename__ = "property_media"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(Integer, index=True)

    media_type: Mapped[str] = mapped_column(String(20), default="image")
    source_url: Mapped[str] = mapped_column(Text)
    media_url: Mapped[str] = mapped_column(Text)

    # image variants: thumbnail 200x150, medium 800x600, large 1920x1440
    thumbnail_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    medium_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    large_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    display_order: Mapped[int] = mapped_column(Integer, default=0)
    caption: Mapped[str | None] = mapped_column(Text, nullable=True)
    width: Mapped[int | None] = mapped_column(Integer, nullable=True)
    height: Mapped[int | None] = mapped_column(Integer, nullable=True)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    processing_status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    processing_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


# -----------------------------
# Provider configuration
# -----------------------------
class ProviderConfiguration(Base):
    __tablename__ = "mls_provider_configurations"
    __table_args__ = (UniqueConstraint("provider_id", name="uq_provider_config_provider"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    provider_id: Mapped[str] = mapped_column(String(100))
    provider_name: Mapped[str] = mapped_column(String(200))
    provider_type: Mapped[str] = mapped_column(String(20))

    login_url: Mapped[str] = mapped_column(Text)
    api_endpoint: Mapped[str | None] = mapped_column(Text, nullable=True)

    rate_limit_requests_per_minute: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rate_limit_requests_per_hour: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # {"ListingKey": "external_id", "ListPrice": "price", ...}
    field_mapping_json: Mapped[str] = mapped_column(Text, default="{}")

    batch_size: Mapped[int] = mapped_column(Integer, default=1000)
    timeout_seconds: Mapped[float] = mapped_column(Float, default=30.0)
    include_media: Mapped[bool] = mapped_column(Boolean, default=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


# -----------------------------
# Run / status ledger
# -----------------------------
class SyncStatus(Base):
    """
    Rolling health, one row per provider. Read by the scheduler due-check.
    """
    __tablename__ = "mls_sync_status"
    __table_args__ = (UniqueConstraint("provider_id", name="uq_sync_status_provider"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    provider_id: Mapped[str] = mapped_column(String(100))
    provider_name: Mapped[str] = mapped_column(String(200))
    provider_type: Mapped[str] = mapped_column(String(20))

    sync_enabled: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    sync_interval_hours: Mapped[int] = mapped_column(Integer, default=4)

    last_sync_started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_sync_completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)
    last_sync_duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_sync_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    last_sync_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    total_properties_synced: Mapped[int] = mapped_column(Integer, default=0)
    properties_added_last_sync: Mapped[int] = mapped_column(Integer, default=0)
    properties_updated_last_sync: Mapped[int] = mapped_column(Integer, default=0)
    properties_deleted_last_sync: Mapped[int] = mapped_column(Integer, default=0)
    properties_errored_last_sync: Mapped[int] = mapped_column(Integer, default=0)

    consecutive_failures: Mapped[int] = mapped_column(Integer, default=0)
    total_sync_count: Mapped[int] = mapped_column(Integer, default=0)
    total_success_count: Mapped[int] = mapped_column(Integer, default=0)
    total_failure_count: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class SyncHistory(Base):
    """
    One row per sync run. Sealed at run end.
    """
    __tablename__ = "mls_sync_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sync_id: Mapped[str] = mapped_column(String(100), unique=True)
    provider_id: Mapped[str] = mapped_column(String(100), index=True)
    sync_type: Mapped[str] = mapped_column(String(20))

    started_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[SyncRunStatus] = mapped_column(
        Enum(SyncRunStatus), default=SyncRunStatus.running, index=True
    )

    properties_fetched: Mapped[int] = mapped_column(Integer, default=0)
    properties_added: Mapped[int] = mapped_column(Integer, default=0)
    properties_updated: Mapped[int] = mapped_column(Integer, default=0)
    properties_deleted: Mapped[int] = mapped_column(Integer, default=0)
    properties_errored: Mapped[int] = mapped_column(Integer, default=0)
    media_downloaded: Mapped[int] = mapped_column(Integer, default=0)
    media_failed: Mapped[int] = mapped_column(Integer, default=0)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_details_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    # 'system', 'admin', 'scheduled', user id
    triggered_by: Mapped[str] = mapped_column(String(100), default="system")
    sync_config_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class SyncError(Base):
    __tablename__ = "mls_sync_errors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sync_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    provider_id: Mapped[str] = mapped_column(String(100), index=True)

    error_type: Mapped[str] = mapped_column(String(40), index=True)
    error_message: Mapped[str] = mapped_column(Text)
    error_context_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    mls_listing_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    retryable: Mapped[bool] = mapped_column(Boolean, default=False)
    resolved: Mapped[bool] = mapped_column(Boolean, default=False, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
