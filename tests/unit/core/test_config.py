"""
Tests for configuration management in `core/config.py`.

Covers:
- Environment parsing and debug defaults
- Logging level coercion to the expected Literal
- Storage and analytics overrides from the environment
- Language fallback
- get_config cache behavior
- AppConfig validation (debug only allowed in development)
- AnalyticsConfig risk threshold ordering
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest
import structlog
import structlog.testing

from core.config import (
    AnalyticsConfig,
    AppConfig,
    LoggingConfig,
    configure_logging,
    get_config,
    load_config_from_env,
)


@pytest.fixture(autouse=True)
def clear_config_cache() -> Iterator[None]:
    """Ensure get_config cache is cleared before and after each test."""
    get_config.cache_clear()
    yield
    get_config.cache_clear()


def test_load_config_dev_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("TRACKER_DB_PATH", raising=False)
    monkeypatch.delenv("TRACKER_LANGUAGE", raising=False)

    config = load_config_from_env()

    assert config.environment == "development"
    assert config.debug is True
    assert config.logging.format == "console"
    assert config.logging.level == "INFO"
    assert config.storage.path == "./afya_tracker.db"
    assert config.storage.wal_mode is True
    assert config.presentation.language == "sw"


def test_production_uses_json_logs(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "prod")

    config = load_config_from_env()

    assert config.environment == "production"
    assert config.debug is False
    assert config.logging.format == "json"


def test_logging_level_literal_coercion(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "staging")

    # Unknown level should coerce to INFO
    monkeypatch.setenv("LOG_LEVEL", "unknown")
    config = load_config_from_env()
    assert config.logging.level == "INFO"

    # Known level should pass through
    monkeypatch.setenv("LOG_LEVEL", "error")
    config = load_config_from_env()
    assert config.logging.level == "ERROR"


def test_storage_and_analytics_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("TRACKER_DB_PATH", "/tmp/family.db")
    monkeypatch.setenv("TRACKER_DB_WAL", "off")
    monkeypatch.setenv("EXAM_GRACE_DAYS", "14")
    monkeypatch.setenv("RISK_WINDOW_YEARS", "3")
    monkeypatch.setenv("ALLERGY_HISTORY_DAYS", "60")

    config = load_config_from_env()

    assert config.storage.path == "/tmp/family.db"
    assert config.storage.wal_mode is False
    assert config.analytics.exam_grace_days == 14
    assert config.analytics.risk_window_years == 3
    assert config.analytics.allergy_history_days == 60
    # Untouched thresholds keep their defaults
    assert config.analytics.critical_deviation == 2.0
    assert config.analytics.fluid_multiplier == 1.5


def test_language_falls_back_to_swahili(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRACKER_LANGUAGE", "EN")
    assert load_config_from_env().presentation.language == "en"

    monkeypatch.setenv("TRACKER_LANGUAGE", "fr")
    assert load_config_from_env().presentation.language == "sw"


def test_get_config_cache(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "development")

    # First call populates cache
    c1 = get_config()
    c2 = get_config()
    assert c1 is c2  # same object due to lru_cache


def test_app_config_debug_only_in_dev_validation() -> None:
    with pytest.raises(ValueError, match="debug mode is only allowed"):
        AppConfig(environment="production", debug=True)


def test_risk_thresholds_must_be_ordered() -> None:
    with pytest.raises(ValueError, match="moderate_risk_count"):
        AnalyticsConfig(moderate_risk_count=20, high_risk_count=20)


def test_configure_logging_filters_below_level() -> None:
    configure_logging(LoggingConfig(level="WARNING", format="console"))
    try:
        with structlog.testing.capture_logs() as logs:
            logger = structlog.get_logger()
            logger.debug("hidden")
            logger.warning("shown")
        assert [entry["event"] for entry in logs] == ["shown"]
    finally:
        structlog.reset_defaults()
