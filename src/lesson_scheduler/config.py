"""
Configuration management for Lesson Scheduler.

Uses Pydantic Settings for type-safe environment variable loading.
Configured via .env file in project root.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be configured via .env file or environment variables.
    """

    # Python & Application
    python_env: Literal["development", "production"] = Field(
        default="development",
        description="Application environment"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./data/lesson_scheduler.db",
        description="Database connection URL"
    )

    # API Configuration
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    api_port: int = Field(
        default=8000,
        description="API server port"
    )

    # Scheduling
    max_query_window_days: int = Field(
        default=366,
        ge=1,
        description=(
            "Policy limit on the longest period (in days) a single occurrence "
            "query may span; not a limit of the occurrence generator itself"
        )
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.python_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.python_env == "production"

    @property
    def uses_postgresql(self) -> bool:
        """Check if PostgreSQL is the configured database."""
        return "postgresql" in self.database_url.lower()

    def validate_production_config(self) -> None:
        """
        Validate configuration for production environment.

        Raises:
            ValueError: If required production settings are missing or invalid
        """
        if not self.is_production:
            return

        errors = []

        if not self.uses_postgresql:
            errors.append(
                "Production requires PostgreSQL. "
                "Set DATABASE_URL to a PostgreSQL connection string."
            )

        if errors:
            raise ValueError("Production configuration errors:\n- " + "\n- ".join(errors))


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Use this function throughout the application to access settings.

    Returns:
        Settings instance loaded from environment

    Example:
        >>> from lesson_scheduler.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.database_url)
    """
    return Settings()
