"""
Purpose: Central configuration for the detention monitor.

Reads tunables from the environment (after .env is loaded by the server) into
a frozen, validated object. No logic here, just parameters.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

VALID_MODES = {"prod", "demo", "test"}


@dataclass(frozen=True)
class MonitorConfig:
    """
    Runtime configuration for the monitor loop and API.
    """

    mode: str = "prod"
    mongo_url: str = "mongodb://localhost:27017"
    db_name: str = "dockwatch"

    # --- Monitor loop ---
    # Every open stop is re-evaluated on this cadence.
    poll_interval_seconds: int = 10

    # --- Display ---
    # How long a closed stop keeps showing as "completed".
    completed_window_minutes: int = 60

    # --- Billing ---
    rate_per_minute: float = 1.25

    # --- Daily alert cleanup ---
    cleanup_hour: int = 3
    cleanup_timezone: str = "America/Chicago"

    expo_access_token: Optional[str] = None

    @property
    def completed_window(self) -> timedelta:
        return timedelta(minutes=self.completed_window_minutes)

    @property
    def cleanup_zone(self) -> ZoneInfo:
        return ZoneInfo(self.cleanup_timezone)

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        if self.mode not in VALID_MODES:
            raise ValueError(f"mode must be one of {sorted(VALID_MODES)}")
        if self.poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be > 0")
        if self.completed_window_minutes < 0:
            raise ValueError("completed_window_minutes must be >= 0")
        if self.rate_per_minute < 0:
            raise ValueError("rate_per_minute must be >= 0")
        if not 0 <= self.cleanup_hour <= 23:
            raise ValueError("cleanup_hour must be between 0 and 23")
        try:
            self.cleanup_zone
        except ZoneInfoNotFoundError:
            raise ValueError(f"Unknown cleanup timezone: {self.cleanup_timezone}") from None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "MonitorConfig":
        env = os.environ if environ is None else environ
        config = cls(
            mode=env.get("DOCKWATCH_MODE", "prod").lower(),
            mongo_url=env.get("MONGO_URL", "mongodb://localhost:27017"),
            db_name=env.get("DB_NAME", "dockwatch"),
            poll_interval_seconds=int(env.get("DOCKWATCH_POLL_SECONDS", "10")),
            completed_window_minutes=int(env.get("DOCKWATCH_COMPLETED_WINDOW_MINUTES", "60")),
            rate_per_minute=float(env.get("DOCKWATCH_RATE_PER_MINUTE", "1.25")),
            cleanup_hour=int(env.get("DOCKWATCH_CLEANUP_HOUR", "3")),
            cleanup_timezone=env.get("DOCKWATCH_CLEANUP_TZ", "America/Chicago"),
            expo_access_token=env.get("EXPO_ACCESS_TOKEN") or None,
        )
        config.validate()
        return config
