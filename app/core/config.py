"""
Application configuration settings.

Central configuration module using Pydantic BaseSettings with environment variable support.
Loads from .env file and environment variables.
"""
import json
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Union
from urllib.parse import quote_plus

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file if it exists (python-dotenv)
env_path = Path(".env")
if env_path.exists():
    load_dotenv(dotenv_path=env_path)


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # App settings
    APP_NAME: str = "Audit Portal"
    APP_ENV: str = Field(default="local")
    DEBUG: bool = Field(default=False)

    # Database settings - generic connection string (highest priority)
    DATABASE_URL: Optional[str] = Field(
        default=None,
        description="Database connection URL",
    )

    # Postgres raw vars (PG*)
    PGUSER: Optional[str] = Field(default=None)
    PGPASSWORD: Optional[str] = Field(default=None)
    PGHOST: Optional[str] = Field(default=None)
    PGPORT: Optional[str] = Field(default=None)
    PGDATABASE: Optional[str] = Field(default=None)

    @property
    def sqlalchemy_database_uri(self) -> str:
        """
        Build SQLAlchemy database URI with priority:
        1. DATABASE_URL (full URL)
        2. PG* vars
        3. SQLite (local development)
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL

        if self.PGUSER and self.PGHOST and self.PGDATABASE:
            password = quote_plus(self.PGPASSWORD or "")
            port = self.PGPORT or "5432"
            return f"postgresql+psycopg2://{self.PGUSER}:{password}@{self.PGHOST}:{port}/{self.PGDATABASE}"

        return "sqlite:///./audit_portal.db"

    # CORS settings
    CORS_ORIGINS: Union[str, List[str]] = Field(
        default='["http://localhost:3000", "http://localhost:8000"]',
    )

    @field_validator("CORS_ORIGINS")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS_ORIGINS from string or list."""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                # If not JSON, treat as comma-separated
                return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # AI settings (OpenAI) - Optional
    OPENAI_API_KEY: Optional[str] = Field(
        default=None,
        description="OpenAI API key for IA-assisted section scoring (optional)",
    )
    OPENAI_MODEL: str = Field(
        default="gpt-4o-mini",
        description="OpenAI model to use for IA-assisted scoring",
    )

    # Logging
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    # Concurrency
    AUDIT_LOCK_TIMEOUT_SECONDS: float = Field(
        default=5.0,
        gt=0,
        description="Maximum wait for the per-audit mutation lock before LockTimeoutError",
    )

    # GPS verification thresholds (meters)
    GPS_VERIFIED_MAX_METERS: float = Field(default=50.0, gt=0)
    GPS_MINOR_DISCREPANCY_MAX_METERS: float = Field(default=200.0, gt=0)

    # Section score policy (manual result vs automatic score)
    SCORE_CUMPLE_FLOOR: float = Field(default=85.0, ge=0, le=100)
    SCORE_OBSERVACIONES_FLOOR: float = Field(default=70.0, ge=0, le=100)
    SCORE_OBSERVACIONES_FACTOR: float = Field(default=0.8, ge=0, le=1)
    SCORE_NO_CUMPLE_CEILING: float = Field(default=50.0, ge=0, le=100)

    def is_openai_available(self) -> bool:
        """Check if OpenAI API key is configured and not empty."""
        return (
            self.OPENAI_API_KEY is not None
            and isinstance(self.OPENAI_API_KEY, str)
            and self.OPENAI_API_KEY.strip() != ""
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
