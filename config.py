"""
Configuration settings for the cloop tutoring engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Language Generation (OpenAI-compatible)
    # ========================================
    llm_api_key: str | None = Field(
        default=None,
        description="API key for the chat completions endpoint",
    )
    llm_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of the OpenAI-compatible API",
    )
    llm_evaluation_model: str = Field(
        default="gpt-4o",
        description="Model used for answer evaluation, goals and questions",
    )
    llm_light_model: str = Field(
        default="gpt-4o-mini",
        description="Model used for follow-up questions, recommendations and explanations",
    )
    llm_timeout_seconds: float = Field(
        default=30.0,
        description="Upper bound for a single generation call before falling back",
    )
    llm_retry_attempts: int = Field(
        default=1,
        ge=1,
        description="Attempts per generation call (1 = no retry)",
    )

    # ========================================
    # Tutoring Session
    # ========================================
    questions_per_goal: int = Field(
        default=18,
        ge=1,
        description="Size of the question batch generated for each goal",
    )
    mastery_threshold_percent: int = Field(
        default=80,
        description="Goal accuracy at or above which a goal counts as mastered",
    )
    learning_gap_threshold_percent: int = Field(
        default=70,
        description="Goal accuracy below which a goal is reported as a learning gap",
    )
    three_star_threshold_percent: int = Field(
        default=80,
        description="Overall accuracy needed for a 3-star session rating",
    )
    two_star_threshold_percent: int = Field(
        default=60,
        description="Overall accuracy needed for a 2-star session rating",
    )
    resource_level: Literal["beginner", "intermediate", "advanced"] = Field(
        default="beginner",
        description="Learner level passed to the resource finder",
    )
    estimated_session_duration: str = Field(
        default="30 minutes",
        description="Duration hint returned when a session starts",
    )

    # ========================================
    # Session Sweep
    # ========================================
    session_max_idle_minutes: int = Field(
        default=60,
        description="Sessions idle longer than this are retired by the sweep",
    )
    sweep_interval_seconds: int = Field(
        default=300,
        description="How often the background sweeper runs",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional log file path",
    )

    # ========================================
    # Helper Methods
    # ========================================
    @property
    def session_max_idle_ms(self) -> int:
        """Idle limit in milliseconds, the unit the registry sweep works in."""
        return self.session_max_idle_minutes * 60 * 1000

    def get_star_thresholds(self) -> dict[int, int]:
        """Star rating thresholds, highest first."""
        return {
            3: self.three_star_threshold_percent,
            2: self.two_star_threshold_percent,
        }

    def get_tutoring_config(self) -> dict[str, Any]:
        """Get tutoring configuration as a dictionary (API key masked)."""
        return {
            "llm": {
                "base_url": self.llm_base_url,
                "api_key": "***" if self.llm_api_key else None,
                "evaluation_model": self.llm_evaluation_model,
                "light_model": self.llm_light_model,
                "timeout_seconds": self.llm_timeout_seconds,
                "retry_attempts": self.llm_retry_attempts,
            },
            "session": {
                "questions_per_goal": self.questions_per_goal,
                "mastery_threshold_percent": self.mastery_threshold_percent,
                "learning_gap_threshold_percent": self.learning_gap_threshold_percent,
                "stars": self.get_star_thresholds(),
                "resource_level": self.resource_level,
            },
            "sweep": {
                "max_idle_minutes": self.session_max_idle_minutes,
                "interval_seconds": self.sweep_interval_seconds,
            },
            "logging": {
                "level": self.log_level,
                "file": self.log_file,
            },
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
