"""Configuration for dirphoto.

Values come from, in order of precedence: keyword arguments, DIRPHOTO_*
environment variables (nested fields use ``__``, e.g.
``DIRPHOTO_AUTHENTICATION__ENABLED``), and a JSON file whose path is read from
``DIRPHOTO_CONFIG_FILE`` (default ``config.json``). A missing file means defaults.

Settings are frozen: build them once at startup and pass them to ``create_app``.
"""

from __future__ import annotations

import os
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from dirphoto.imaging.encoder import EncoderSettings

CONFIG_FILE_ENV = "DIRPHOTO_CONFIG_FILE"
DEFAULT_CONFIG_FILE = "config.json"

LOOPBACK_HOST = "127.0.0.1"
ALL_INTERFACES_HOST = "0.0.0.0"  # noqa: S104


class AuthenticationSettings(BaseModel):
    """HTTP Basic-Auth gate in front of every route."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    username: str = ""
    password: str = ""

    @model_validator(mode="after")
    def _require_credentials(self) -> AuthenticationSettings:
        if self.enabled and not (self.username and self.password):
            raise ValueError("authentication is enabled but username or password is empty")
        return self


class ServerSettings(BaseModel):
    """Listen policy."""

    model_config = ConfigDict(frozen=True)

    allow_external_access: bool = False
    port: int = Field(default=8080, ge=1, le=65535)


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="DIRPHOTO_",
        env_nested_delimiter="__",
        case_sensitive=False,
        frozen=True,
    )

    authentication: AuthenticationSettings = AuthenticationSettings()
    server: ServerSettings = ServerSettings()

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Encoding
    preview_quality: int = Field(default=85, ge=1, le=100)
    budget_start_quality: int = Field(default=90, ge=1, le=100)
    budget_quality_step: int = Field(default=10, ge=1)
    budget_quality_floor: int = Field(default=10, ge=0)
    max_photo_bytes: int = Field(default=100 * 1024, ge=1)

    # Input limits
    max_image_pixels: int = Field(default=25_000_000, ge=1)

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)
    process_timeout: float = Field(default=30.0, ge=0)

    # Directory store
    powershell_executable: str = "powershell"
    directory_group: str = "Domain Users"
    dev_fallback_users: bool = True

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        json_file = os.environ.get(CONFIG_FILE_ENV, DEFAULT_CONFIG_FILE)
        return (
            init_settings,
            env_settings,
            JsonConfigSettingsSource(settings_cls, json_file=json_file),
        )

    @model_validator(mode="after")
    def _check_encoder_settings(self) -> Settings:
        self.encoder_settings()
        return self

    @property
    def listen_host(self) -> str:
        """Bind to all interfaces only when external access is allowed AND auth is on."""
        if self.authentication.enabled and self.server.allow_external_access:
            return ALL_INTERFACES_HOST
        return LOOPBACK_HOST

    def encoder_settings(self) -> EncoderSettings:
        """Build the encoder tunables from these settings."""
        return EncoderSettings(
            preview_quality=self.preview_quality,
            start_quality=self.budget_start_quality,
            quality_step=self.budget_quality_step,
            quality_floor=self.budget_quality_floor,
            max_bytes=self.max_photo_bytes,
        )


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
