"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ALLOWED_ORIGINS: str = "*"

    # Selection reconciliation
    NOTICE_TTL_SECONDS: float = 3.0  # "item deleted" notice self-dismisses after this

    # Batch import
    IMPORT_YIELD_INTERVAL: int = 1  # rows between cooperative yields
    DEFAULT_ACCOUNT_TYPE: str = "customer"  # variant for parents created by import

    # Bulk actions
    BULK_DELETE_PAUSE_SECONDS: float = 0.05

    def cors_origins(self) -> list[str]:
        """Return CORS_ALLOWED_ORIGINS split into a list."""
        return [o.strip() for o in self.CORS_ALLOWED_ORIGINS.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
