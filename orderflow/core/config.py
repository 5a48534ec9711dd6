"""Application configuration."""
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service settings, read from the environment or a .env file."""

    database_url: str  # postgresql:// and sqlite:// get async drivers
    venue_name: str = "Pub"
    menu_file: Optional[str] = None  # YAML catalog; bundled menu when unset

    admin_password: str = "1234"
    session_ttl_hours: int = Field(default=24, gt=0)

    broadcast_send_timeout: float = Field(default=5.0, gt=0)

    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @field_validator("menu_file")
    @classmethod
    def blank_menu_file_is_unset(cls, value: Optional[str]) -> Optional[str]:
        return value or None


settings = Settings()
