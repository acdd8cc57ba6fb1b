"""
Tests for centralized configuration module.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from unittest import mock
from zoneinfo import ZoneInfo

import pytest
from pydantic import ValidationError

from daily_brew.core.config import (
    BrewSettings,
    get_settings,
    get_state_dir,
    is_debug_enabled,
    reset_settings,
)


class TestBrewSettings:
    """Test BrewSettings class."""

    def test_default_values(self):
        """Test that default values are correct."""
        with mock.patch.dict(os.environ, {}, clear=True):
            settings = BrewSettings()

            assert settings.log_level == "WARNING"
            assert settings.debug is False
            assert settings.log_json is False
            assert settings.timezone == "UTC"
            assert settings.refresh_interval_seconds == 60.0
            assert settings.max_items == 200
            assert settings.state_dir.name == ".daily-brew"

    def test_log_level_from_env(self):
        """Test log level parsing from environment."""
        with mock.patch.dict(os.environ, {"BREW_LOG_LEVEL": "DEBUG"}, clear=True):
            settings = BrewSettings()
            assert settings.log_level == "DEBUG"
            assert settings.effective_log_level == "DEBUG"
            assert settings.log_level_int == logging.DEBUG

    def test_log_level_case_insensitive(self):
        """Test log level is case-insensitive."""
        with mock.patch.dict(os.environ, {"BREW_LOG_LEVEL": "info"}, clear=True):
            settings = BrewSettings()
            assert settings.log_level == "INFO"

    def test_invalid_log_level_rejected(self):
        """Unknown log levels fail validation."""
        with mock.patch.dict(os.environ, {"BREW_LOG_LEVEL": "LOUD"}, clear=True):
            with pytest.raises(ValidationError):
                BrewSettings()

    def test_debug_legacy_flag(self):
        """Test legacy BREW_DEBUG flag enables debug mode."""
        with mock.patch.dict(os.environ, {"BREW_DEBUG": "1"}, clear=True):
            settings = BrewSettings()
            assert settings.debug is True
            assert settings.effective_log_level == "DEBUG"

    def test_debug_legacy_does_not_override_explicit_level(self):
        """Test explicit log level takes precedence over BREW_DEBUG."""
        env = {"BREW_LOG_LEVEL": "ERROR", "BREW_DEBUG": "1"}
        with mock.patch.dict(os.environ, env, clear=True):
            settings = BrewSettings()
            assert settings.debug is True
            assert settings.effective_log_level == "ERROR"

    def test_engine_tuning_from_env(self):
        """Refresh interval and working-set bound come from the environment."""
        env = {"BREW_REFRESH_INTERVAL_SECONDS": "15", "BREW_MAX_ITEMS": "50"}
        with mock.patch.dict(os.environ, env, clear=True):
            settings = BrewSettings()
            assert settings.refresh_interval_seconds == 15.0
            assert settings.max_items == 50

    def test_non_positive_refresh_interval_rejected(self):
        """A zero refresh interval would spin the event loop."""
        with mock.patch.dict(os.environ, {"BREW_REFRESH_INTERVAL_SECONDS": "0"}, clear=True):
            with pytest.raises(ValidationError):
                BrewSettings()

    def test_timezone_resolves_to_zoneinfo(self):
        """Known timezone names are exposed as ZoneInfo."""
        with mock.patch.dict(os.environ, {"BREW_TIMEZONE": "Europe/Berlin"}, clear=True):
            settings = BrewSettings()
            assert settings.zone == ZoneInfo("Europe/Berlin")

    def test_unknown_timezone_rejected(self):
        """Unresolvable timezone names fail validation."""
        with mock.patch.dict(os.environ, {"BREW_TIMEZONE": "Mars/Olympus_Mons"}, clear=True):
            with pytest.raises(ValidationError):
                BrewSettings()

    def test_state_dir_from_env(self, tmp_path):
        """State directory is parsed as a Path."""
        with mock.patch.dict(os.environ, {"BREW_STATE_DIR": str(tmp_path)}, clear=True):
            settings = BrewSettings()
            assert settings.state_dir == tmp_path


class TestSettingsSingleton:
    """Test the cached accessor."""

    def test_get_settings_is_cached(self):
        """Repeated calls return the same instance."""
        assert get_settings() is get_settings()

    def test_reset_settings_reloads_environment(self, monkeypatch):
        """reset_settings picks up environment changes."""
        monkeypatch.setenv("BREW_LOG_LEVEL", "ERROR")
        reset_settings()
        assert get_settings().log_level == "ERROR"

        monkeypatch.setenv("BREW_LOG_LEVEL", "DEBUG")
        assert get_settings().log_level == "ERROR"

        reset_settings()
        assert get_settings().log_level == "DEBUG"
        assert is_debug_enabled() is True


class TestGetStateDir:
    """Test state directory resolution."""

    def test_override_wins(self, tmp_path):
        """An explicit override is returned unchanged."""
        assert get_state_dir(tmp_path / "custom") == tmp_path / "custom"

    def test_falls_back_to_settings(self, tmp_path):
        """Without override the configured directory is used."""
        assert get_state_dir() == Path(str(tmp_path / "state"))
