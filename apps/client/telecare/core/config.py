"""Runtime configuration for the telecare client."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="TELECARE_",
        case_sensitive=False,
        extra="ignore",
    )

    app_env: str = Field(default="development")
    log_level: str = Field(default="INFO")
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])

    api_base_url: str = Field(default="http://localhost:5001/api")
    signaling_url: str = Field(default="ws://localhost:5001/ws/video")
    request_timeout: float = Field(default=10.0, gt=0)

    token_path: Path = Field(default_factory=lambda: Path.home() / ".telecare" / "session.json")

    media_source: str = Field(default="synthetic")
    media_acquire_timeout: float = Field(default=30.0, gt=0)
    signaling_connect_timeout: float = Field(default=15.0, gt=0)

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: object) -> object:
        """Allow comma-separated env values for CORS origins."""

        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("api_base_url", "signaling_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


settings = get_settings()
