from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import model_validator
from typing import Optional


class Settings(BaseSettings):
    """
    Main configuration for Costsight.
    Uses Pydantic-Settings for environment variable parsing from .env.
    """
    APP_NAME: str = "Costsight"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # local, development, staging, production
    TESTING: bool = False
    RATELIMIT_ENABLED: bool = True
    RATELIMIT_STORAGE_URI: str = "memory://"  # redis://... when running several workers
    RATE_LIMIT_STANDARD: str = "100/minute"
    RATE_LIMIT_IMPORT: str = "20/minute"
    RATE_LIMIT_ANALYSIS: str = "30/minute"

    @model_validator(mode='after')
    def validate_runtime_config(self) -> 'Settings':
        """Ensure critical production keys are present and valid."""
        if self.TESTING:
            return self

        if self.is_production and len(self.JWT_SECRET) < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters in production.")

        if self.INVENTORY_BACKEND not in ("database", "http"):
            raise ValueError(f"Invalid INVENTORY_BACKEND: {self.INVENTORY_BACKEND}. Use: database, http")

        if self.INVENTORY_BACKEND == "http" and not self.INVENTORY_API_URL:
            raise ValueError("INVENTORY_API_URL is required when INVENTORY_BACKEND=http.")

        return self

    # Database
    DATABASE_URL: str  # Required
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # Auth (tokens are issued by the surrounding platform)
    JWT_SECRET: str
    JWT_AUDIENCE: str = "authenticated"

    # Security
    CORS_ORIGINS: list[str] = []

    # Server (costsight console script)
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 1

    # Forecasting
    FORECAST_LOOKBACK_DAYS: int = 90
    FORECAST_MIN_HISTORY_POINTS: int = 7
    FORECAST_DEFAULT_HORIZON_DAYS: int = 30
    FORECAST_MAX_HORIZON_DAYS: int = 365

    # Historical reporting
    HISTORY_DEFAULT_RANGE_DAYS: int = 90
    HISTORY_MAX_RANGE_DAYS: int = 366

    # Anomaly detection
    ANOMALY_BASELINE_DAYS: int = 7
    ANOMALY_THRESHOLD_PERCENT: float = 25.0

    # Billing import
    BILLING_IMPORT_MAX_BYTES: int = 10 * 1024 * 1024  # 10MB

    # Resource inventory
    INVENTORY_BACKEND: str = "database"  # database, http
    INVENTORY_API_URL: Optional[str] = None
    INVENTORY_API_TOKEN: Optional[str] = None
    INVENTORY_TIMEOUT_SECONDS: float = 10.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT in ("production", "staging")


@lru_cache
def get_settings():
    """Returns a singleton instance of the application settings."""
    return Settings()
