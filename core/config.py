"""
Configuration management with environment variable support and validation.

Design principles:
- Environment-specific configs (dev, staging, prod)
- Validation at startup (fail fast)
- Type safety with Pydantic
- Every analytic threshold lives here, not in the algorithms
"""

import logging
import os
from functools import lru_cache
from typing import Literal, cast

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Load environment variables from .env file
load_dotenv()

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
Language = Literal["sw", "en"]


class StorageConfig(BaseModel):
    """Local record store configuration."""

    path: str = Field(default="./afya_tracker.db", description="SQLite database file path")
    wal_mode: bool = Field(default=True, description="Use write-ahead logging journal mode")
    busy_timeout_seconds: float = Field(
        default=10.0, gt=0.0, description="Seconds to wait on a locked database file"
    )


class AnalyticsConfig(BaseModel):
    """Thresholds used by the analytics engine and allergy analyzer."""

    # Baseline deviation
    critical_deviation: float = Field(
        default=2.0, gt=0.0, description="Standard deviations that flag a value as critical"
    )
    default_std_dev: float = Field(default=1.0, gt=0.0, description="Fallback std deviation")

    # Trend detection
    trend_threshold: float = Field(
        default=0.5, ge=0.0, description="Average change per point that counts as a trend"
    )

    # Fluid requirement
    fluid_multiplier: float = Field(
        default=1.5, gt=0.0, description="Condition adjustment applied to the tiered base"
    )

    # Cumulative transfusion risk
    risk_window_years: int = Field(default=5, gt=0, description="Trailing risk window")
    high_risk_count: int = Field(default=20, gt=0, description="Count above which risk is high")
    moderate_risk_count: int = Field(
        default=15, gt=0, description="Count above which risk is moderate"
    )

    # Exam scheduling
    exam_grace_days: int = Field(default=7, ge=0, description="Days tolerated past a due date")
    exam_soon_days: int = Field(default=30, ge=0, description="Horizon for 'soon' exams")
    exam_scheduled_days: int = Field(default=90, ge=0, description="Horizon for 'scheduled'")

    # Allergy suspicion
    allergy_history_days: int = Field(default=30, gt=0, description="Diary days analyzed")
    allergy_confidence_threshold: float = Field(
        default=0.6, ge=0.0, le=1.0, description="Minimum confidence for a suspicious food"
    )
    allergy_min_reactions: int = Field(
        default=2, gt=0, description="Minimum reaction-day occurrences for suspicion"
    )
    elimination_gap_days: int = Field(
        default=3, ge=0, description="Rest days between consecutive eliminations"
    )

    @model_validator(mode="after")
    def risk_thresholds_ordered(self) -> "AnalyticsConfig":
        """Moderate risk must start below high risk."""
        if self.moderate_risk_count >= self.high_risk_count:
            raise ValueError("moderate_risk_count must be lower than high_risk_count")
        return self


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(default="INFO", description="Logging level")
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class PresentationConfig(BaseModel):
    """User-facing message settings."""

    language: Language = Field(default="sw", description="Default message language")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    # Environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Component configs
    storage: StorageConfig = Field(default_factory=StorageConfig)
    analytics: AnalyticsConfig = Field(default_factory=AnalyticsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    presentation: PresentationConfig = Field(default_factory=PresentationConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> LogLevel:
        v = val.strip().upper()
        levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        return cast(LogLevel, v if v in levels else "INFO")

    def _language_to_literal(val: str) -> Language:
        v = val.strip().lower()
        return cast(Language, v if v in {"sw", "en"} else "sw")

    def _parse_bool(val: str | None, default: bool) -> bool:
        if val is None:
            return default
        return val.strip().lower() in {"1", "true", "yes", "on"}

    # Detect environment
    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    storage_config = StorageConfig(
        path=os.getenv("TRACKER_DB_PATH", "./afya_tracker.db"),
        wal_mode=_parse_bool(os.getenv("TRACKER_DB_WAL"), True),
        busy_timeout_seconds=float(os.getenv("TRACKER_DB_TIMEOUT_SECONDS", "10.0")),
    )

    analytics_config = AnalyticsConfig(
        exam_grace_days=int(os.getenv("EXAM_GRACE_DAYS", "7")),
        risk_window_years=int(os.getenv("RISK_WINDOW_YEARS", "5")),
        allergy_history_days=int(os.getenv("ALLERGY_HISTORY_DAYS", "30")),
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    presentation_config = PresentationConfig(
        language=_language_to_literal(os.getenv("TRACKER_LANGUAGE", "sw")),
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        storage=storage_config,
        analytics=analytics_config,
        logging=logging_config,
        presentation=presentation_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


def configure_logging(config: LoggingConfig) -> None:
    """Configure structlog for the whole process from a LoggingConfig."""
    renderer = (
        structlog.dev.ConsoleRenderer()
        if config.format == "console"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelNamesMapping()[config.level]
        ),
        context_class=dict,
        cache_logger_on_first_use=True,
    )
