"""Tests for settings loading and the listen policy."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest
from pydantic import ValidationError

from dirphoto.config import CONFIG_FILE_ENV, Settings
from dirphoto.imaging.encoder import EncoderSettings

if TYPE_CHECKING:
    from pathlib import Path

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "config.json"
    monkeypatch.setenv(CONFIG_FILE_ENV, str(path))
    return path


def _write(path: Path, data: dict[str, object]) -> None:
    path.write_text(json.dumps(data), encoding="utf-8")


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestDefaults:
    def test_missing_file_uses_defaults(self, config_file: Path) -> None:
        settings = Settings()
        assert settings.authentication.enabled is False
        assert settings.server.allow_external_access is False
        assert settings.server.port == 8080
        assert settings.listen_host == "127.0.0.1"

    def test_default_encoder_settings(self, config_file: Path) -> None:
        assert Settings().encoder_settings() == EncoderSettings()

    def test_settings_are_frozen(self, config_file: Path) -> None:
        settings = Settings()
        with pytest.raises(ValidationError):
            settings.max_photo_bytes = 1  # type: ignore[misc]


class TestJsonFile:
    def test_loads_nested_sections(self, config_file: Path) -> None:
        _write(
            config_file,
            {
                "authentication": {"enabled": True, "username": "admin", "password": "pw"},
                "server": {"allow_external_access": True},
            },
        )
        settings = Settings()
        assert settings.authentication.username == "admin"
        assert settings.listen_host == "0.0.0.0"

    def test_external_access_needs_auth(self, config_file: Path) -> None:
        _write(config_file, {"server": {"allow_external_access": True}})
        assert Settings().listen_host == "127.0.0.1"

    def test_auth_without_external_access_stays_local(self, config_file: Path) -> None:
        _write(config_file, {"authentication": {"enabled": True, "username": "a", "password": "b"}})
        assert Settings().listen_host == "127.0.0.1"

    def test_env_overrides_file(self, config_file: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        _write(config_file, {"max_photo_bytes": 50_000, "server": {"port": 9000}})
        monkeypatch.setenv("DIRPHOTO_MAX_PHOTO_BYTES", "70000")
        settings = Settings()
        assert settings.max_photo_bytes == 70_000
        assert settings.server.port == 9000
        assert settings.encoder_settings().max_bytes == 70_000

    def test_enabled_auth_requires_credentials(self, config_file: Path) -> None:
        _write(config_file, {"authentication": {"enabled": True, "username": "admin"}})
        with pytest.raises(ValidationError, match="username or password"):
            Settings()


class TestEncoderTunables:
    def test_custom_quality_search(self, config_file: Path) -> None:
        settings = Settings(budget_start_quality=95, budget_quality_step=5, budget_quality_floor=50)
        encoder = settings.encoder_settings()
        assert (encoder.start_quality, encoder.quality_step, encoder.quality_floor) == (95, 5, 50)

    def test_floor_above_start_rejected(self, config_file: Path) -> None:
        with pytest.raises(ValidationError):
            Settings(budget_start_quality=40, budget_quality_floor=60)
