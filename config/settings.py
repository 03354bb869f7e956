# config/settings.py
"""
Environment-driven settings.

Values are read once (after loading `.env`) and cached; call
`get_settings.cache_clear()` in tests that tweak the environment.
"""
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> List[str]:
    raw = os.getenv(name, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


@dataclass(frozen=True)
class Settings:
    app_name: str = "Stock Portfolio Monitor"
    app_version: str = "1.0.0"

    database_url: str = "sqlite:///./portfolio.db"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 1800

    # Auth
    session_ttl_hours: int = 24
    login_lockout_threshold: int = 5
    login_lockout_window_minutes: int = 60
    password_min_length: int = 6

    # Admission control
    rate_limit_default: str = "100/hour"
    rate_limit_enabled: bool = True
    rate_limit_storage_uri: str = "memory://"

    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    # Housekeeping
    activity_log_retention_days: int = 30
    failed_login_retention_hours: int = 24
    maintenance_interval_minutes: int = 60


@lru_cache
def get_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./portfolio.db"),
        db_pool_size=int(os.getenv("DB_POOL_SIZE", "5")),
        db_max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "10")),
        db_pool_timeout=int(os.getenv("DB_POOL_TIMEOUT", "30")),
        db_pool_recycle=int(os.getenv("DB_POOL_RECYCLE", "1800")),
        session_ttl_hours=int(os.getenv("SESSION_TTL_HOURS", "24")),
        login_lockout_threshold=int(os.getenv("LOGIN_LOCKOUT_THRESHOLD", "5")),
        login_lockout_window_minutes=int(os.getenv("LOGIN_LOCKOUT_WINDOW_MINUTES", "60")),
        password_min_length=int(os.getenv("PASSWORD_MIN_LENGTH", "6")),
        rate_limit_default=os.getenv("RATE_LIMIT_DEFAULT", "100/hour"),
        rate_limit_enabled=_env_bool("RATE_LIMIT_ENABLED", True),
        rate_limit_storage_uri=os.getenv("REDIS_URL", "memory://"),
        cors_origins=_env_list("CORS_ORIGINS", "*"),
        activity_log_retention_days=int(os.getenv("ACTIVITY_LOG_RETENTION_DAYS", "30")),
        failed_login_retention_hours=int(os.getenv("FAILED_LOGIN_RETENTION_HOURS", "24")),
        maintenance_interval_minutes=int(os.getenv("MAINTENANCE_INTERVAL_MINUTES", "60")),
    )
