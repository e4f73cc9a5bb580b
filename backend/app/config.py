import logging
from pydantic_settings import BaseSettings
from pydantic import model_validator, ConfigDict
from functools import lru_cache

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment: "development" or "production"
    environment: str = "development"

    database_url: str = "postgresql+asyncpg://localhost/seller_analytics"

    @model_validator(mode="before")
    @classmethod
    def _fix_database_url_for_asyncpg(cls, values: dict) -> dict:
        """Heroku-style Postgres gives postgresql:// — we need postgresql+asyncpg:// for asyncpg."""
        if not isinstance(values, dict):
            return values
        url = values.get("database_url") or ""
        if url.startswith("postgresql://") and "+asyncpg" not in url:
            values["database_url"] = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return values

    encryption_key: str = ""
    cron_secret: str = ""  # Empty = scheduled trigger is unguarded
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    # Marketplace APIs
    statistics_api_url: str = "https://statistics-api.wildberries.ru"
    advert_api_url: str = "https://advert-api.wildberries.ru"
    http_timeout_seconds: float = 60.0
    http_max_retries: int = 1
    http_retry_backoff_seconds: float = 1.0

    # Pagination / batching
    report_page_size: int = 1000
    upsert_batch_size: int = 50
    advert_stats_batch_size: int = 100  # hard limit of the fullstats endpoint
    advert_status_codes: str = "7,9,11"  # active, paused, completed

    # Sync windows
    recent_lookback_days: int = 5
    financials_lookback_days: int = 30
    sync_log_limit: int = 20
    fleet_concurrency: int = 1

    # Flat-rate tax (simplified tax system, 6% of revenue)
    tax_rate: float = 0.06

    @model_validator(mode="after")
    def _validate_settings(self) -> "Settings":
        """Enforce sane numeric ranges and production secrets."""
        if not 0 <= self.tax_rate < 1:
            raise ValueError(f"TAX_RATE must be in [0, 1), got {self.tax_rate}")
        if self.fleet_concurrency < 1:
            raise ValueError("FLEET_CONCURRENCY must be at least 1")
        if self.is_production:
            if not self.encryption_key:
                raise ValueError(
                    "ENCRYPTION_KEY must be set in production. "
                    "Generate one with: python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
                )
            if not self.database_url or "localhost" in self.database_url:
                logger.warning("DATABASE_URL appears to point at localhost in production.")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def advert_status_list(self) -> list[int]:
        return [int(s) for s in self.advert_status_codes.split(",") if s.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
