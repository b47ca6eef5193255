"""Tests for SchedulerSettings and load_settings."""

from __future__ import annotations

from pathlib import Path

import pytest

from cronspine.core.errors import ConfigError
from cronspine.core.settings import SchedulerSettings, load_settings


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Run each test from an empty directory with no CRONSPINE_* variables."""
    import os

    for key in list(os.environ):
        if key.startswith("CRONSPINE_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)


class TestDefaults:
    def test_defaults(self):
        settings = SchedulerSettings()

        assert settings.database_url is None
        assert settings.timezone == "UTC"
        assert settings.recover_on_start is True
        assert settings.max_workers == 10
        assert settings.misfire_grace_seconds == 60
        assert settings.statement_timeout_seconds == 30.0
        assert settings.log_level == "INFO"
        assert settings.log_json is None
        assert settings.data_dir == Path.home() / ".cronspine"

    def test_resolved_url_defaults_to_data_dir(self, tmp_path):
        settings = SchedulerSettings(data_dir=tmp_path)
        assert settings.resolved_database_url == f"sqlite:///{tmp_path / 'cronspine.db'}"

    def test_resolved_url_prefers_explicit(self):
        settings = SchedulerSettings(database_url="postgresql://u@h/db")
        assert settings.resolved_database_url == "postgresql://u@h/db"


class TestEnvironment:
    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("CRONSPINE_DATABASE_URL", "sqlite:///x.db")
        monkeypatch.setenv("CRONSPINE_MAX_WORKERS", "4")
        monkeypatch.setenv("CRONSPINE_RECOVER_ON_START", "false")
        monkeypatch.setenv("CRONSPINE_LOG_LEVEL", "debug")

        settings = load_settings()

        assert settings.database_url == "sqlite:///x.db"
        assert settings.max_workers == 4
        assert settings.recover_on_start is False
        assert settings.log_level == "DEBUG"

    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("CRONSPINE_TIMEZONE=Europe/Berlin\n")
        assert load_settings().timezone == "Europe/Berlin"

    def test_overrides_beat_env(self, monkeypatch):
        monkeypatch.setenv("CRONSPINE_TIMEZONE", "Asia/Tokyo")
        assert load_settings(timezone="UTC").timezone == "UTC"


class TestValidation:
    def test_unknown_timezone(self):
        with pytest.raises(ConfigError, match="timezone"):
            load_settings(timezone="Mars/Olympus")

    def test_unknown_log_level(self):
        with pytest.raises(ConfigError):
            load_settings(log_level="LOUD")

    @pytest.mark.parametrize(
        "field, value",
        [("max_workers", 0), ("misfire_grace_seconds", 0), ("statement_timeout_seconds", 0)],
    )
    def test_bounds(self, field, value):
        with pytest.raises(ConfigError):
            load_settings(**{field: value})
