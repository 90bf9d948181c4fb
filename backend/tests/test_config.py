"""
Tests for common/config.py

Environment parsing and validation of monitor settings.
"""

import pytest
from datetime import timedelta

from common.config import MonitorConfig


class TestFromEnv:
    """Reading configuration from an environment mapping."""

    def test_defaults(self):
        config = MonitorConfig.from_env({})
        assert config.mode == "prod"
        assert config.poll_interval_seconds == 10
        assert config.completed_window == timedelta(minutes=60)
        assert config.rate_per_minute == 1.25
        assert config.cleanup_hour == 3
        assert config.cleanup_zone.key == "America/Chicago"
        assert config.expo_access_token is None

    def test_overrides(self):
        config = MonitorConfig.from_env({
            "DOCKWATCH_MODE": "DEMO",
            "MONGO_URL": "mongodb://db:27017",
            "DB_NAME": "fleet",
            "DOCKWATCH_POLL_SECONDS": "30",
            "DOCKWATCH_COMPLETED_WINDOW_MINUTES": "15",
            "DOCKWATCH_RATE_PER_MINUTE": "1.5",
            "DOCKWATCH_CLEANUP_HOUR": "4",
            "DOCKWATCH_CLEANUP_TZ": "America/New_York",
            "EXPO_ACCESS_TOKEN": "secret",
        })
        assert config.mode == "demo"
        assert config.db_name == "fleet"
        assert config.poll_interval_seconds == 30
        assert config.completed_window == timedelta(minutes=15)
        assert config.rate_per_minute == 1.5
        assert config.cleanup_hour == 4
        assert config.expo_access_token == "secret"

    def test_empty_token_is_none(self):
        assert MonitorConfig.from_env({"EXPO_ACCESS_TOKEN": ""}).expo_access_token is None

    def test_non_numeric_poll_interval(self):
        with pytest.raises(ValueError):
            MonitorConfig.from_env({"DOCKWATCH_POLL_SECONDS": "often"})


class TestValidate:
    """Out-of-range values are rejected."""

    @pytest.mark.parametrize("overrides", [
        {"mode": "staging"},
        {"poll_interval_seconds": 0},
        {"completed_window_minutes": -1},
        {"rate_per_minute": -0.5},
        {"cleanup_hour": 24},
        {"cleanup_timezone": "Mars/Olympus_Mons"},
    ])
    def test_invalid(self, overrides):
        with pytest.raises(ValueError):
            MonitorConfig(**overrides).validate()

    def test_zero_completed_window_allowed(self):
        MonitorConfig(completed_window_minutes=0).validate()
