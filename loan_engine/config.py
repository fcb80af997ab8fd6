"""
Engine configuration using Pydantic Settings.

Settings only supply defaults. Anything passed explicitly to a calculation
(a RoundingConfig, an iteration cap) always wins.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="LOAN_ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Significant digits carried by intermediate arithmetic
    working_precision: int = 50

    # Rounding defaults for monetary outputs
    default_decimal_places: int = 2
    default_rounding_mode: str = "round-half-up"

    # Effective-rate solver
    solver_max_iterations: int = 100


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
