from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Literal

SyncTypeName = Literal["full", "incremental"]


class SyncTriggerIn(BaseModel):
    sync_type: SyncTypeName = "incremental"
    max_properties: int | None = Field(default=None, ge=1)


class SyncAck(BaseModel):
    started: bool
    provider_id: str
    sync_type: str
    triggered_by: str
    sync_id: str


class CancelResult(BaseModel):
    provider_id: str
    cancelled_runs: int


class ProviderStatistics(BaseModel):
    total_properties_synced: int
    added_last_sync: int
    updated_last_sync: int
    deleted_last_sync: int
    errored_last_sync: int


class ProviderHealth(BaseModel):
    consecutive_failures: int
    total_sync_count: int
    total_success_count: int
    total_failure_count: int
    # percentage string ("87.50%") or "N/A" before the first run
    success_rate: str


class ProviderStatusOut(BaseModel):
    provider_id: str
    provider_name: str
    provider_type: str
    sync_enabled: bool
    sync_interval_hours: int

    last_sync_started_at: datetime | None = None
    last_sync_completed_at: datetime | None = None
    last_sync_duration_seconds: int | None = None
    last_sync_status: str | None = None
    last_sync_error: str | None = None

    statistics: ProviderStatistics
    health: ProviderHealth
    is_running: bool


class SyncHistoryOut(BaseModel):
    sync_id: str
    provider_id: str
    sync_type: str
    started_at: datetime
    completed_at: datetime | None = None
    duration_seconds: int | None = None
    status: str

    properties_fetched: int
    properties_added: int
    properties_updated: int
    properties_deleted: int
    properties_errored: int
    media_downloaded: int
    media_failed: int

    error_message: str | None = None
    triggered_by: str
    sync_config: dict[str, Any] | None = None


class SyncErrorOut(BaseModel):
    id: int
    sync_id: str | None = None
    provider_id: str
    error_type: str
    error_message: str
    error_context: dict[str, Any] | None = None
    mls_listing_id: str | None = None
    retryable: bool
    resolved: bool
    created_at: datetime


class HistoryStatistics(BaseModel):
    total_syncs: int
    successful_syncs: int
    partial_syncs: int
    failed_syncs: int
    cancelled_syncs: int
    average_duration_seconds: int
    total_properties_added: int
    total_properties_updated: int
    success_rate: str


class SyncStatisticsOut(BaseModel):
    total_providers: int
    active_providers: int
    running_syncs: int
    total_properties: int
    sync_statistics: HistoryStatistics


class ToggleEnabledIn(BaseModel):
    enabled: bool


class IntervalIn(BaseModel):
    # 1..24, checked by SyncCoordinator.set_interval
    interval_hours: int
