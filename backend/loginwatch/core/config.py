import logging
import os
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings


def _get_version() -> str:
    """Read version from pyproject.toml or environment variable."""
    # First check environment variable (for Docker/CI overrides)
    if env_version := os.getenv("LOGINWATCH_VERSION"):
        return env_version

    # Try to read from pyproject.toml
    try:
        pyproject_path = Path(__file__).parent.parent.parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            content = pyproject_path.read_text()
            for line in content.split("\n"):
                if line.startswith("version"):
                    # Parse: version = "0.1.0"
                    return line.split("=")[1].strip().strip('"').strip("'")
    except OSError:
        pass

    return "0.0.0-dev"


APP_VERSION = _get_version()

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    # Database
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "loginwatch"
    POSTGRES_PASSWORD: str = "devpassword"
    POSTGRES_DB: str = "loginwatch"

    # Full SQLAlchemy URL, takes precedence over the POSTGRES_* parts
    DATABASE_URL_OVERRIDE: str | None = None

    @property
    def DATABASE_URL(self) -> str:
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def DATABASE_URL_SYNC(self) -> str:
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    # App
    APP_NAME: str = "loginwatch"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Redis (scheduler locking)
    REDIS_URL: str = "redis://localhost:6379"

    # Retention
    RETENTION_DAYS: int = 90
    RETENTION_INTERVAL_MINUTES: int = 60

    # Suspicion heuristics
    FAILED_ATTEMPTS_THRESHOLD: int = 5
    FAILED_ATTEMPTS_WINDOW_MINUTES: int = 60
    RAPID_ATTEMPT_LOOKBACK_SECONDS: int = 60
    RAPID_ATTEMPT_INTERVAL_MS: int = 10_000

    # Calendar-day boundaries for daily statistics
    STATS_TIMEZONE: str = "UTC"

    # MaxMind GeoLite2 City database; enrichment is skipped when missing
    GEOIP_DB_PATH: str = "/data/geoip/GeoLite2-City.mmdb"

    @property
    def retention_seconds(self) -> int:
        return self.RETENTION_DAYS * 24 * 60 * 60

    @field_validator(
        "RETENTION_DAYS",
        "RETENTION_INTERVAL_MINUTES",
        "FAILED_ATTEMPTS_THRESHOLD",
        "FAILED_ATTEMPTS_WINDOW_MINUTES",
        "RAPID_ATTEMPT_LOOKBACK_SECONDS",
        "RAPID_ATTEMPT_INTERVAL_MS",
    )
    @classmethod
    def validate_positive(cls, v: int, info) -> int:
        if v <= 0:
            raise ValueError(f"{info.field_name} must be a positive integer")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")
        return level

    @field_validator("STATS_TIMEZONE")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"STATS_TIMEZONE '{v}' is not a known IANA timezone")
        return v

    @field_validator("RAPID_ATTEMPT_INTERVAL_MS")
    @classmethod
    def validate_rapid_interval(cls, v: int, info) -> int:
        lookback = info.data.get("RAPID_ATTEMPT_LOOKBACK_SECONDS")
        if lookback and v > lookback * 1000:
            logging.getLogger(__name__).warning(
                "RAPID_ATTEMPT_INTERVAL_MS exceeds the rapid-attempt lookback; "
                "gaps longer than the lookback are never detected"
            )
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
