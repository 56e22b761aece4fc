"""
Application settings using Pydantic.

Provides environment-based configuration loading with INFRALAYER_ prefix.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # State
    state_path: str = "infralayer.state.json"
    state_commit_attempts: int = Field(default=5, ge=1)
    state_commit_backoff_seconds: float = Field(default=0.2, ge=0)

    # Provider
    provider: str = "memory"

    # Execution
    max_parallelism: int = Field(default=4, ge=1)

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json, console

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "INFRALAYER_"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
