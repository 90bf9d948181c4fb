from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol, Set

from detention.models import Alert, Driver, NewAlert, Settings, Stop


class StoreError(Exception):
    """Base class for storage failures."""


class DuplicateAlertError(StoreError):
    """An alert with the same dedupe key already exists."""

    def __init__(self, key: tuple):
        super().__init__(f"Alert already exists for {key}")
        self.key = key


class NotFoundError(StoreError):
    """Referenced driver, stop or alert does not exist."""


class StopConflictError(StoreError):
    """Driver already has an open stop."""


@dataclass(frozen=True)
class AlertFilter:
    driver_ids: Optional[Iterable[str]] = None
    stop_key: Optional[str] = None
    unread_only: bool = False


class AlertStore(Protocol):
    def create_alert(self, new_alert: NewAlert) -> Alert:
        ...

    def list_alerts(self, alert_filter: Optional[AlertFilter] = None) -> List[Alert]:
        ...

    def mark_read(self, alert_id: str) -> bool:
        ...

    def mark_all_read(self, driver_ids: Optional[Iterable[str]] = None) -> int:
        ...

    def clear_history(self) -> int:
        ...

    def clear_all(self) -> int:
        ...

    # Dedupe ledger: one key per alert ever raised. Clearing alert rows
    # leaves it untouched; only prune_keys removes entries.
    def existing_keys(self, driver_id: str, stop_key: str) -> Set[tuple]:
        ...

    def prune_keys(self, keep_stop_keys: Iterable[str]) -> int:
        ...


class FleetStore(Protocol):
    def add_driver(self, name: str, truck_number: str, dispatcher: str) -> Driver:
        ...

    def get_driver(self, driver_id: str) -> Optional[Driver]:
        ...

    def list_drivers(self, active_only: bool = True) -> List[Driver]:
        ...

    def deactivate_driver(self, driver_id: str) -> Driver:
        ...

    def current_stop(self, driver_id: str) -> Optional[Stop]:
        ...

    def list_open_stops(self) -> List[Stop]:
        ...

    def update_driver(self, driver: Driver) -> Driver:
        ...

    def open_stop(self, stop: Stop) -> Stop:
        ...

    def save_stop(self, stop: Stop) -> Stop:
        ...

    def get_settings(self) -> Settings:
        ...

    def update_settings(self, settings: Settings) -> Settings:
        ...


class PushTokenStore(Protocol):
    def register_push_token(self, token: str, dispatcher: Optional[str] = None) -> None:
        ...

    def list_push_tokens(self) -> List[str]:
        ...
