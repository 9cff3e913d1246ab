"""Jokes API - Configuration"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database (SQLAlchemy SQLite URL; "sqlite://" for an in-memory database)
    database_url: str = "sqlite:///./jokes.db"
    pool_size: int = 5
    max_overflow: int = 15
    pool_recycle: int = 1800

    # CORS origins (comma-separated URLs)
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    # Pagination for jokes and users listings
    page_size: int = Field(default=15, gt=0, le=200)

    # Passwords and tokens
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    token_ttl_days: Optional[int] = Field(default=None, gt=0)  # None = tokens never expire
    password_reset_ttl_minutes: int = Field(default=60, gt=0)

    # Reject request bodies larger than this before routing
    max_payload_bytes: int = 1 * 1024 * 1024

    log_level: str = "INFO"

    def get_cors_origins_list(self) -> list[str]:
        """Get list of allowed CORS origins."""
        if not self.cors_origins:
            return ["http://localhost:3000"]
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "JOKES_"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()
