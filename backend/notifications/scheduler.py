"""
Detention Monitor Scheduler

Periodic jobs that:
1. Evaluate every open stop and create due alerts (every poll interval)
2. Notify dispatchers of each newly created alert
3. Clear alert history once a day (03:00 Central by default), keeping the
   dedupe keys of stops that are still open

Each driver is evaluated independently; one driver failing never stops the
rest of the tick. Alert history is read back from the store on every tick,
so a failed tick loses nothing.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from typing import List, Optional

from detention.alert_engine import AlertEngine
from detention.models import Alert, ensure_utc, utcnow
from detention.thresholds import ConfigError
from stores.contracts import AlertStore, FleetStore

from .notifier import AlertNotifier

logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    """Outcome of one evaluation pass."""
    evaluated: int = 0
    created: List[Alert] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)  # Driver IDs with bad config
    failed: List[str] = field(default_factory=list)  # Driver IDs whose evaluation errored


class DetentionMonitor:
    """Scheduler for detention alert evaluation and daily cleanup."""

    def __init__(
        self,
        engine: AlertEngine,
        fleet: FleetStore,
        alerts: AlertStore,
        notifier: Optional[AlertNotifier] = None,
    ):
        """
        Initialize monitor.

        Args:
            engine: Alert rules
            fleet: Roster and stop store
            alerts: Alert store (for cleanup)
            notifier: Optional notifier for new alerts
        """
        self.engine = engine
        self.fleet = fleet
        self.alerts = alerts
        self.notifier = notifier

    def run_tick(self, now: Optional[datetime] = None) -> TickResult:
        """
        Evaluate all open stops and notify for new alerts.

        Called every poll interval and on manual refresh.
        """
        now = ensure_utc(now) if now is not None else utcnow()
        result = TickResult()

        try:
            stops = self.fleet.list_open_stops()
        except Exception as e:
            logger.error(f"[MONITOR] Could not load open stops: {e}")
            return result

        for stop in stops:
            try:
                driver = self.fleet.get_driver(stop.driver_id)
                if driver is None or not driver.is_active:
                    continue
                created = self.engine.evaluate(driver, stop, now)
            except ConfigError as e:
                logger.warning(f"[MONITOR] Skipping driver {stop.driver_id}: {e}")
                result.skipped.append(stop.driver_id)
                continue
            except Exception as e:
                logger.error(f"[MONITOR] Evaluation failed for driver {stop.driver_id}: {e}")
                result.failed.append(stop.driver_id)
                continue

            result.evaluated += 1
            result.created.extend(created)

        # Persist first, then notify
        for alert in result.created:
            self._notify(alert)

        if result.created or result.failed:
            logger.info(
                f"[MONITOR] Tick complete: {result.evaluated} evaluated, "
                f"{len(result.created)} alerts created, {len(result.failed)} failed"
            )
        return result

    def _notify(self, alert: Alert) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.notify_alert(alert)
        except Exception as e:
            logger.error(f"[MONITOR] Failed to notify alert {alert.id}: {e}")

    def clear_alerts(self) -> int:
        """
        Delete every alert and drop dedupe keys of stops that are no longer open.

        Keys of open stops are kept, so a driver still in detention is not
        alerted again for the same appointment.

        Returns:
            Number of alerts deleted
        """
        count = self.alerts.clear_all()
        open_keys = {stop.alert_key for stop in self.fleet.list_open_stops()}
        self.alerts.prune_keys(open_keys)
        return count

    def run_cleanup(self) -> int:
        """Clear all alert history. Called once a day."""
        logger.info("[MONITOR] Starting daily alert history cleanup")
        try:
            count = self.clear_alerts()
        except Exception as e:
            logger.error(f"[MONITOR] Alert cleanup error: {e}")
            return 0
        logger.info(f"[MONITOR] Alert history cleanup complete: {count} alerts removed")
        return count


def next_cleanup_at(now: datetime, hour: int, zone: tzinfo) -> datetime:
    """Next occurrence of hour:00 local time in zone, strictly after now (UTC result)."""
    local_now = ensure_utc(now).astimezone(zone)
    candidate = local_now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if candidate <= local_now:
        candidate = (candidate + timedelta(days=1)).replace(hour=hour, minute=0)
    return ensure_utc(candidate)
