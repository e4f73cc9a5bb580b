"""
Tests for application configuration and settings validation.
"""

import os
import pytest
from unittest.mock import patch

from app.config import Settings, get_settings


def test_settings_loads_defaults():
    """Settings should load with sensible defaults in development."""
    get_settings.cache_clear()
    with patch.dict(os.environ, {
        "ENVIRONMENT": "development",
        "DATABASE_URL": "postgresql+asyncpg://localhost/test",
    }, clear=False):
        get_settings.cache_clear()
        settings = get_settings()
        assert settings.environment == "development"
        assert settings.is_production is False
        assert settings.report_page_size == 1000
        assert settings.upsert_batch_size == 50
        assert settings.advert_stats_batch_size == 100
        assert settings.recent_lookback_days == 5
        assert settings.financials_lookback_days == 30
        assert settings.tax_rate == 0.06
        assert settings.sync_log_limit == 20
        assert settings.advert_status_list == [7, 9, 11]
    get_settings.cache_clear()


def test_settings_cors_origin_list():
    """CORS origins string should be split into a list."""
    settings = Settings(cors_origins="http://localhost:3000, http://example.com")
    origins = settings.cors_origin_list
    assert len(origins) == 2
    assert "http://localhost:3000" in origins
    assert "http://example.com" in origins


def test_plain_postgres_url_is_rewritten_for_asyncpg():
    settings = Settings(database_url="postgresql://user:pw@db-host:5432/shop")
    assert settings.database_url == "postgresql+asyncpg://user:pw@db-host:5432/shop"


@pytest.mark.parametrize("rate", [-0.01, 1.0, 1.5])
def test_tax_rate_must_be_a_fraction(rate):
    with pytest.raises(ValueError, match="TAX_RATE"):
        Settings(tax_rate=rate)


def test_fleet_concurrency_must_be_positive():
    with pytest.raises(ValueError, match="FLEET_CONCURRENCY"):
        Settings(fleet_concurrency=0)


def test_production_requires_encryption_key():
    with pytest.raises(ValueError, match="ENCRYPTION_KEY must be set"):
        Settings(
            environment="production",
            encryption_key="",
            database_url="postgresql+asyncpg://prod-host/db",
        )


def test_production_accepts_encryption_key():
    settings = Settings(
        environment="production",
        encryption_key="k" * 44,
        database_url="postgresql+asyncpg://prod-host/db",
    )
    assert settings.is_production is True
