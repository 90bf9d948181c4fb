from __future__ import annotations

import threading
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Set
from uuid import uuid4

from detention.models import Alert, Driver, NewAlert, Settings, Stop

from .contracts import (
    AlertFilter,
    AlertStore,
    DuplicateAlertError,
    FleetStore,
    NotFoundError,
    PushTokenStore,
    StopConflictError,
)


def _matches(alert: Alert, alert_filter: Optional[AlertFilter]) -> bool:
    if alert_filter is None:
        return True
    if alert_filter.driver_ids is not None and alert.driver_id not in set(alert_filter.driver_ids):
        return False
    if alert_filter.stop_key is not None and alert.stop_key != alert_filter.stop_key:
        return False
    if alert_filter.unread_only and alert.is_read:
        return False
    return True


class InMemoryAlertStore(AlertStore):
    """Process-local alert store enforcing the same uniqueness as the Mongo index."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._alerts: Dict[str, Alert] = {}
        self._keys: Dict[tuple, str] = {}  # Dedupe ledger, survives clearing

    def create_alert(self, new_alert: NewAlert) -> Alert:
        with self._lock:
            if new_alert.dedupe_key in self._keys:
                raise DuplicateAlertError(new_alert.dedupe_key)
            alert = Alert.from_new(str(uuid4()), new_alert)
            self._alerts[alert.id] = alert
            self._keys[alert.dedupe_key] = alert.id
            return alert

    def list_alerts(self, alert_filter: Optional[AlertFilter] = None) -> List[Alert]:
        with self._lock:
            alerts = [a for a in self._alerts.values() if _matches(a, alert_filter)]
        return sorted(alerts, key=lambda a: (a.timestamp, a.detention_bucket))

    def mark_read(self, alert_id: str) -> bool:
        with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None:
                return False
            self._alerts[alert_id] = replace(alert, is_read=True)
            return True

    def mark_all_read(self, driver_ids: Optional[Iterable[str]] = None) -> int:
        wanted = set(driver_ids) if driver_ids is not None else None
        count = 0
        with self._lock:
            for alert_id, alert in list(self._alerts.items()):
                if alert.is_read or (wanted is not None and alert.driver_id not in wanted):
                    continue
                self._alerts[alert_id] = replace(alert, is_read=True)
                count += 1
        return count

    def clear_history(self) -> int:
        with self._lock:
            read_ids = [alert_id for alert_id, a in self._alerts.items() if a.is_read]
            for alert_id in read_ids:
                del self._alerts[alert_id]
        return len(read_ids)

    def clear_all(self) -> int:
        with self._lock:
            count = len(self._alerts)
            self._alerts.clear()
        return count

    def existing_keys(self, driver_id: str, stop_key: str) -> Set[tuple]:
        with self._lock:
            return {key for key in self._keys if key[0] == driver_id and key[1] == stop_key}

    def prune_keys(self, keep_stop_keys: Iterable[str]) -> int:
        keep = set(keep_stop_keys)
        with self._lock:
            stale = [key for key in self._keys if key[1] not in keep]
            for key in stale:
                del self._keys[key]
        return len(stale)


class InMemoryFleetStore(FleetStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._drivers: Dict[str, Driver] = {}
        self._stops: Dict[str, Stop] = {}
        self._settings = Settings()

    def add_driver(self, name: str, truck_number: str, dispatcher: str) -> Driver:
        driver = Driver(id=str(uuid4()), name=name, truck_number=truck_number, dispatcher=dispatcher)
        with self._lock:
            self._drivers[driver.id] = driver
        return driver

    def get_driver(self, driver_id: str) -> Optional[Driver]:
        return self._drivers.get(driver_id)

    def list_drivers(self, active_only: bool = True) -> List[Driver]:
        drivers = [d for d in self._drivers.values() if d.is_active or not active_only]
        return sorted(drivers, key=lambda d: d.name)

    def deactivate_driver(self, driver_id: str) -> Driver:
        with self._lock:
            driver = self._drivers.get(driver_id)
            if driver is None:
                raise NotFoundError(f"Driver {driver_id} not found")
            driver = replace(driver, is_active=False)
            self._drivers[driver_id] = driver
        return driver

    def update_driver(self, driver: Driver) -> Driver:
        with self._lock:
            if driver.id not in self._drivers:
                raise NotFoundError(f"Driver {driver.id} not found")
            self._drivers[driver.id] = driver
        return driver

    def current_stop(self, driver_id: str) -> Optional[Stop]:
        stops = [s for s in self._stops.values() if s.driver_id == driver_id]
        if not stops:
            return None
        for stop in stops:
            if stop.is_open:
                return stop
        return max(stops, key=lambda s: s.departure_time)

    def list_open_stops(self) -> List[Stop]:
        return [s for s in self._stops.values() if s.is_open]

    def open_stop(self, stop: Stop) -> Stop:
        with self._lock:
            if stop.driver_id not in self._drivers:
                raise NotFoundError(f"Driver {stop.driver_id} not found")
            if any(s.driver_id == stop.driver_id and s.is_open for s in self._stops.values()):
                raise StopConflictError(f"Driver {stop.driver_id} already has an open stop")
            self._stops[stop.id] = stop
        return stop

    def save_stop(self, stop: Stop) -> Stop:
        with self._lock:
            if stop.id not in self._stops:
                raise NotFoundError(f"Stop {stop.id} not found")
            if stop.is_open and any(
                s.driver_id == stop.driver_id and s.is_open and s.id != stop.id for s in self._stops.values()
            ):
                raise StopConflictError(f"Driver {stop.driver_id} already has an open stop")
            self._stops[stop.id] = stop
        return stop

    def get_settings(self) -> Settings:
        return self._settings

    def update_settings(self, settings: Settings) -> Settings:
        self._settings = settings
        return settings


class InMemoryPushTokenStore(PushTokenStore):
    def __init__(self) -> None:
        self._tokens: Dict[str, Optional[str]] = {}

    def register_push_token(self, token: str, dispatcher: Optional[str] = None) -> None:
        self._tokens[token] = dispatcher

    def list_push_tokens(self) -> List[str]:
        return list(self._tokens)
