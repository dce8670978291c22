from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Runtime ---
    ENV: str = "dev"  # dev|prod
    MLS_DB_URL: str = "sqlite+aiosqlite:///./mls_sync.db"
    LOG_LEVEL: str = "INFO"

    # --- Minimal admin auth (API key) ---
    # Send: X-API-Key: <key>
    API_KEY: str | None = None

    # --- Outbound HTTP ---
    HTTP_TIMEOUT_S: float = 30.0
    # Runs never auto-retry a failed provider call; the scheduler picks it up next cycle.
    HTTP_MAX_RETRIES: int = 0
    HTTP_BACKOFF_BASE_S: float = 0.5
    MLS_VERIFY_SSL: bool = True
    # Optional: custom CA bundle path (corporate proxies)
    MLS_CA_BUNDLE: str | None = None

    # --- MLS defaults ---
    MLS_DEFAULT_BATCH_SIZE: int = 1000
    MLS_DEFAULT_INTERVAL_HOURS: int = 4
    MLS_USER_AGENT: str = "mls-sync/0.1"
    MLS_RETS_VERSION: str = "RETS/1.7.2"

    # Mock provider (dev/demo without credentials)
    MOCK_MLS_LISTING_COUNT: int = 50
    MOCK_MLS_LATENCY_S: float = 0.0

    # --- Media pipeline ---
    MEDIA_PROCESSING_ENABLED: bool = True
    MEDIA_MAX_BYTES: int = 20 * 1024 * 1024
    MEDIA_DOWNLOAD_TIMEOUT_S: float = 30.0
    MEDIA_ORIGINAL_QUALITY: int = 90
    MEDIA_VARIANT_QUALITY: int = 82
    MEDIA_ROOT: str = "./media"
    MEDIA_BASE_URL: str = "http://localhost:8000/media"
    MEDIA_CDN_BASE_URL: str | None = None

    # --- Scheduler tuning ---
    SCHED_MLS_CHECK_INTERVAL_MINUTES: int = 60


settings = Settings()
