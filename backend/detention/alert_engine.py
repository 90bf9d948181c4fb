"""
Detention alert engine

Decides which dispatcher alerts a driver's current stop should have and
creates the missing ones:

1. warning  - once per stop appointment, while the driver is in the warning stage
2. critical - once per stop appointment, when detention starts
3. reminder - once per 30 detention minutes (minute 30, 60, 90, ...). After a gap
   in evaluation every missed bucket is raised, so buckets always step by 30.

History lives in the alert store's dedupe ledger, not in memory or on the
alert rows, so clearing alerts never re-arms them. Several callers (the
monitor loop, manual refreshes, other server processes) may evaluate the same
driver at once; the store's uniqueness on (driver, stop key, type, bucket) is what
guarantees at most one alert per key. A DuplicateAlertError means another
caller won the race and is not an error.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from stores.contracts import AlertStore, DuplicateAlertError

from .classifier import DEFAULT_COMPLETED_WINDOW, Classification, DriverStatus, classify
from .models import Alert, AlertType, Driver, NewAlert, Stop, ensure_utc, utcnow
from .rates import RateFunction, cost_for_minutes
from .thresholds import parse_stop_type

logger = logging.getLogger(__name__)

REMINDER_INTERVAL_MINUTES = 30


def reminder_bucket(detention_minutes: int, interval: int = REMINDER_INTERVAL_MINUTES) -> int:
    """Detention minute multiple a reminder belongs to: floor(minutes / interval) * interval."""
    return (max(detention_minutes, 0) // interval) * interval


class AlertEngine:
    """Stateless alert rules over a persistent alert store."""

    def __init__(
        self,
        store: AlertStore,
        rate_fn: RateFunction = cost_for_minutes,
        reminder_interval_minutes: int = REMINDER_INTERVAL_MINUTES,
        completed_window: timedelta = DEFAULT_COMPLETED_WINDOW,
    ):
        if reminder_interval_minutes <= 0:
            raise ValueError("reminder_interval_minutes must be > 0")
        self.store = store
        self.rate_fn = rate_fn
        self.reminder_interval_minutes = reminder_interval_minutes
        self.completed_window = completed_window

    def evaluate(self, driver: Driver, stop: Optional[Stop], now: Optional[datetime] = None) -> List[Alert]:
        """
        Create any alerts the driver's stop is due and return the new ones.

        Args:
            driver: Driver being evaluated
            stop: The driver's current stop (closed stops never alert)
            now: Evaluation time (default: current UTC time)

        Returns:
            Alerts created by this call; empty if nothing new was due

        Raises:
            ConfigError: If the stop type is unknown
            StoreError / driver exceptions: If the store cannot be read
        """
        if stop is None or not stop.is_open:
            return []

        now = ensure_utc(now) if now is not None else utcnow()
        classification = classify(stop, now, self.rate_fn, self.completed_window)

        due = self.due_alerts(driver, stop, classification, now)
        if not due:
            return []

        existing = self.store.existing_keys(driver.id, stop.alert_key)

        created = []
        for new_alert in due:
            if new_alert.dedupe_key in existing:
                continue
            try:
                created.append(self.store.create_alert(new_alert))
            except DuplicateAlertError:
                logger.debug(
                    f"[ALERTS] {new_alert.alert_type.value} alert for driver {driver.id} "
                    f"already created elsewhere"
                )
        return created

    def due_alerts(
        self,
        driver: Driver,
        stop: Stop,
        classification: Classification,
        now: datetime,
    ) -> List[NewAlert]:
        """Alerts that should exist for this classification, created or not."""
        label = parse_stop_type(stop.stop_type).label

        def _alert(alert_type: AlertType, message: str, bucket: int = 0) -> NewAlert:
            return NewAlert(
                driver_id=driver.id,
                alert_type=alert_type,
                message=message,
                stop_key=stop.alert_key,
                appointment_time=stop.appointment_time,
                detention_bucket=bucket,
                timestamp=now,
            )

        if classification.status == DriverStatus.WARNING:
            return [
                _alert(
                    AlertType.WARNING,
                    f"{driver.name} will enter detention in "
                    f"{classification.time_to_detention} minutes ({label} stop)",
                )
            ]

        if not classification.is_in_detention:
            return []

        due = [_alert(AlertType.CRITICAL, f"{driver.name} has entered detention ({label} stop)")]

        current = reminder_bucket(classification.detention_minutes, self.reminder_interval_minutes)
        for bucket in range(self.reminder_interval_minutes, current + 1, self.reminder_interval_minutes):
            # Missed buckets report their own boundary, the current one the live figure
            minutes = classification.detention_minutes if bucket == current else bucket
            due.append(
                _alert(
                    AlertType.REMINDER,
                    f"{driver.name} still in detention for {minutes} minutes ({label} stop)",
                    bucket=bucket,
                )
            )
        return due
