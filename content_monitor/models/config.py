"""Application configuration model using pydantic-settings."""

from __future__ import annotations

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    """Application configuration loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    database_path: str = "data/monitors.db"
    log_level: str = "INFO"
    max_retries: int = 3
    fetch_timeout: float = 60.0
    fetch_attempts: int = 2
    max_workers: int = 4
    max_results: int = 50
    inactivity_days: int = 180
    review_change_threshold: int = 5
    review_window_days: int = 7

    @field_validator("database_path")
    @classmethod
    def validate_database_path(cls, value: str) -> str:
        """Ensure parent directory exists, creating it if necessary."""
        parent = Path(value).parent
        parent.mkdir(parents=True, exist_ok=True)
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Log level must be a valid Python logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_value = value.upper()
        if upper_value not in valid_levels:
            msg = f"log_level must be one of {', '.join(sorted(valid_levels))}"
            raise ValueError(msg)
        return upper_value

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, value: int) -> int:
        """Cross-cycle retries must be between 0 and 10."""
        if value < 0 or value > 10:
            msg = "max_retries must be between 0 and 10"
            raise ValueError(msg)
        return value

    @field_validator("fetch_timeout")
    @classmethod
    def validate_fetch_timeout(cls, value: float) -> float:
        if value <= 0:
            msg = "fetch_timeout must be greater than 0"
            raise ValueError(msg)
        return value

    @field_validator(
        "fetch_attempts", "max_workers", "max_results", "review_change_threshold"
    )
    @classmethod
    def validate_positive(cls, value: int) -> int:
        """Counts must be at least 1."""
        if value < 1:
            msg = "value must be at least 1"
            raise ValueError(msg)
        return value

    @field_validator("inactivity_days", "review_window_days")
    @classmethod
    def validate_days(cls, value: int) -> int:
        """Day windows must be positive."""
        if value < 1:
            msg = "day window must be at least 1 day"
            raise ValueError(msg)
        return value
