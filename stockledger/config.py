from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ==============================
    # Application
    # ==============================
    APP_NAME: str = "Stock Ledger Service"
    ENVIRONMENT: str = "local"

    # ==============================
    # Database
    # ==============================
    DATABASE_URL: str = "sqlite:///./stockledger.db"

    # ==============================
    # Logging
    # ==============================
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # ==============================
    # Security
    # ==============================
    API_KEYS: Optional[str] = None
    API_KEY_HEADER: str = "X-API-Key"
    ACTOR_HEADER: str = "X-Actor-Id"
    SHOP_HEADER: str = "X-Shop-Id"
    JWT_SECRET: Optional[str] = None
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: Optional[str] = None
    JWT_ISSUER: Optional[str] = None
    JWT_REQUIRED: bool = False

    # ==============================
    # Stock
    # ==============================
    DEFAULT_LOW_STOCK_THRESHOLD: int = 5
    STOCK_LOCK_TIMEOUT_SECONDS: float = 10.0

    # ==============================
    # Alerts
    # ==============================
    EXPIRY_WINDOW_DAYS: int = 7
    EXPIRY_WARNING_DAYS: int = 3
    ALERT_AUTO_RESOLVE: bool = True

    # ==============================
    # Analytics
    # ==============================
    ANALYTICS_RECENT_PRICE_CHANGES: int = 10
    ANALYTICS_TOP_N: int = 10

    # ==============================
    # Scheduler
    # ==============================
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_RUN_AFTER: str = "02:00"
    SCHEDULER_POLL_SECONDS: int = 30
    SCHEDULER_STALE_SECONDS: int = 900
    SCHEDULER_RETRY_SECONDS: int = 300
    SCHEDULER_MAX_RETRIES: int = 3
    SCHEDULER_TZ: str = "local"


@lru_cache
def get_settings() -> Settings:
    """Cached settings loader (once per process)."""
    return Settings()


__all__ = ["Settings", "get_settings"]
