from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv
from typing import Optional

load_dotenv()


class Settings(BaseSettings):
    # Application settings
    app_name: str = "Content Engagement Service"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = "development"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Database settings
    database_url: str = "sqlite+aiosqlite:///./engagement.db"

    # Security settings
    secret_key: str = "change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    # CORS settings
    allowed_origins: list[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Redis (optional second cache tier)
    redis_url: Optional[str] = None

    # Identity resolution
    session_header_name: str = "X-Session-ID"
    session_cookie_name: str = "session_id"
    trust_forwarded_for: bool = False

    # View ledger. None keeps one counted view per identity forever.
    view_dedup_window_hours: Optional[int] = None
    view_retention_days: Optional[int] = None

    # Discovery cache
    discovery_cache_ttl_seconds: int = 300
    discovery_cache_max_entries: int = 1000

    # Counter reconciliation
    counter_drift_tolerance: int = 0
    reconcile_interval_minutes: int = 60
    reconcile_batch_size: int = 500
    scheduler_enabled: bool = True

    # Rate limits for engagement writes
    engagement_rate_limit: str = "120/minute"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


settings = Settings()
