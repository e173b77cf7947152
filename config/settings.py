"""
Configuration settings for the application
"""
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Request body ceiling shared by the HTTP boundary (10 MB)
DEFAULT_MAX_BODY_BYTES = 10 * 1024 * 1024


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,  # Allow both field name and alias
        extra="ignore",
    )

    # Storage configuration (no URL means in-memory storage)
    database_url: Optional[str] = Field(default=None, alias="DATABASE_URL")
    redis_url: Optional[str] = Field(default=None, alias="REDIS_URL")

    # Frontend configuration (single CORS origin)
    frontend_url: str = Field(default="http://localhost:3000", alias="FRONTEND_URL")

    # Server configuration
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=5000, alias="PORT")
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("ENVIRONMENT", "NODE_ENV", "environment"),
    )

    # Rate limiting: max requests per client address inside a sliding window
    rate_limit_window_seconds: float = Field(default=15 * 60, alias="RATE_LIMIT_WINDOW_SECONDS")
    rate_limit_max_requests: int = Field(default=100, alias="RATE_LIMIT_MAX_REQUESTS")
    # Key clients on the first X-Forwarded-For entry; only enable behind a trusted proxy
    trust_proxy: bool = Field(default=False, alias="TRUST_PROXY")

    max_body_bytes: int = Field(default=DEFAULT_MAX_BODY_BYTES, alias="MAX_BODY_BYTES")

    # Logging
    log_dir: Path = Field(default=Path("./logs"), alias="LOG_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


# Instantiate settings object
settings = Settings()

# Determine if we're in production mode
IS_PRODUCTION = settings.is_production


def get_settings() -> Settings:
    return settings
