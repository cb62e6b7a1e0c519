"""
Configuration management for the map planning session server.

Handles environment-based configuration for development and production.
"""
from pathlib import Path
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    environment: str = "development"

    # Debug - handle non-boolean values gracefully
    debug: bool = False

    @field_validator("debug", mode="before")
    @classmethod
    def parse_debug(cls, v):
        """Parse debug from environment, handling non-boolean values."""
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            return v.strip().lower() in ("true", "1", "yes")
        return False

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # CORS (comma-separated)
    cors_origins: str = "*"

    # Sessions: seconds without peers before a session may be evicted, and how often to check
    session_grace_seconds: float = 300.0
    eviction_interval_seconds: float = 30.0
    max_sessions: int = 10000

    # WebSocket
    max_frame_size: int = 256 * 1024
    ws_receive_timeout_seconds: float = 120.0
    send_timeout_seconds: float = 5.0

    model_config = SettingsConfigDict(
        # Load .env from project root (mapplanner/core/config.py -> parent.parent.parent)
        env_file=str(Path(__file__).resolve().parent.parent.parent / ".env"),
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def cors_origin_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


# Global settings instance
settings = Settings()
