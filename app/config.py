import logging
import sys
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Supabase (identity provider + profiles)
    SUPABASE_URL: str
    SUPABASE_API_KEY: str

    # App config
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]
    DEBUG: bool = False

    # Room store
    ROOM_STORE_BACKEND: Literal["memory", "redis"] = "memory"
    ROOM_CODE_MAX_ATTEMPTS: int = Field(5, ge=1)
    ROOM_WRITE_MAX_ATTEMPTS: int = Field(5, ge=1)
    # Seconds between checks for room changes made by other instances (redis backend)
    ROOM_POLL_INTERVAL: float = Field(0.5, gt=0)

    # Upstash Redis
    UPSTASH_REDIS_REST_URL: str | None = None
    UPSTASH_REDIS_REST_TOKEN: str | None = None

    # WebSocket timing, in seconds
    WS_HEARTBEAT_INTERVAL: int = Field(30, gt=0)
    WS_CONNECTION_TIMEOUT: int = Field(120, gt=0)

    @field_validator("UPSTASH_REDIS_REST_URL")
    @classmethod
    def validate_redis_url(cls, v: str | None) -> str | None:
        if v is not None and not v.startswith("https://"):
            raise ValueError("UPSTASH_REDIS_REST_URL must be a valid HTTPS URL")
        return v

    @model_validator(mode="after")
    def validate_store_backend(self) -> "Settings":
        token = (self.UPSTASH_REDIS_REST_TOKEN or "").strip()
        if self.ROOM_STORE_BACKEND == "redis" and not (self.UPSTASH_REDIS_REST_URL and token):
            raise ValueError(
                "UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN are required "
                "when ROOM_STORE_BACKEND is 'redis'"
            )
        return self

    @property
    def supabase_jwks_url(self) -> str:
        return f"{self.SUPABASE_URL}/auth/v1/.well-known/jwks.json"


def configure_logging(debug: bool = False) -> None:
    """Configure logging for the application."""
    log_level = logging.DEBUG if debug else logging.INFO
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("hpack").setLevel(logging.WARNING)


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    configure_logging(settings.DEBUG)
    logger.info("Settings loaded successfully")
    logger.debug("Supabase URL: %s", settings.SUPABASE_URL)
    logger.debug("JWKS URL: %s", settings.supabase_jwks_url)
    logger.debug("Room store backend: %s", settings.ROOM_STORE_BACKEND)
    return settings
