"""
Pipeline Forge - Configuration
==============================

All application settings loaded from environment variables.
Uses pydantic-settings for validation and type conversion.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Application
    # ==========================================================================
    APP_NAME: str = "Pipeline Forge"
    APP_VERSION: str = "0.1.0"
    ENVIRONMENT: Literal["development", "staging", "production", "test"] = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # ==========================================================================
    # Project Data Collaborator
    # ==========================================================================
    PROJECT_DATA_API_URL: str = "http://localhost:8700"
    PROJECT_DATA_API_KEY: Optional[str] = None
    PROJECT_DATA_TIMEOUT_SECONDS: float = 30.0

    # ==========================================================================
    # Pipeline Generation
    # ==========================================================================
    PIPELINE_DURATION_WARNING_SECONDS: int = 3600
    PIPELINE_DURATION_BUFFER: float = 1.2
    PIPELINE_MIN_DURATION_SECONDS: int = 60
    DEFAULT_TEST_MAX_WORKERS: int = 4

    # ==========================================================================
    # Test Execution
    # ==========================================================================
    TEST_PARALLELIZATION_MIN_LOC: int = 10_000
    TEST_MAX_WORKERS_CAP: int = 8
    TEST_MAX_SUITES_PER_PHASE: int = 10
    SYNTHETIC_PASS_RATE: float = 0.9
    SYNTHETIC_TIME_SCALE: float = 0.01
    SYNTHETIC_MAX_SUITE_DELAY_SECONDS: float = 1.0

    # ==========================================================================
    # Result Analysis
    # ==========================================================================
    METRICS_HISTORY_LIMIT: int = 30
    COVERAGE_TARGET: float = 80.0

    # ==========================================================================
    # Computed Properties
    # ==========================================================================
    @computed_field  # type: ignore[misc]
    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @computed_field  # type: ignore[misc]
    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @computed_field  # type: ignore[misc]
    @property
    def is_test(self) -> bool:
        return self.ENVIRONMENT == "test"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export
settings = get_settings()
