"""
Stop lifecycle service - arrivals, appointments and departures.

Keeps the one-open-stop-per-driver rule and freezes final detention figures
when a stop is closed. Dashboard listings are classified on every read and
never stored.
"""

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Iterable, List, Optional
from uuid import uuid4

from detention.classifier import DEFAULT_COMPLETED_WINDOW, final_detention
from detention.models import Driver, DriverWithLocation, Stop, ensure_utc, utcnow
from detention.rates import RateFunction, cost_for_minutes
from detention.thresholds import ConfigError, parse_stop_type
from detention.views import build_driver_view
from stores.contracts import FleetStore, NotFoundError

logger = logging.getLogger(__name__)


class StopService:
    """Fleet roster and stop operations on top of a FleetStore."""

    def __init__(
        self,
        fleet: FleetStore,
        rate_fn: RateFunction = cost_for_minutes,
        completed_window: timedelta = DEFAULT_COMPLETED_WINDOW,
    ):
        self.fleet = fleet
        self.rate_fn = rate_fn
        self.completed_window = completed_window

    def _require_driver(self, driver_id: str) -> Driver:
        driver = self.fleet.get_driver(driver_id)
        if driver is None:
            raise NotFoundError(f"Driver {driver_id} not found")
        return driver

    def _require_open_stop(self, driver_id: str) -> Stop:
        stop = self.fleet.current_stop(driver_id)
        if stop is None or not stop.is_open:
            raise NotFoundError(f"Driver {driver_id} has no open stop")
        return stop

    def driver_views(
        self,
        now: Optional[datetime] = None,
        dispatcher: Optional[str] = None,
    ) -> List[DriverWithLocation]:
        """Classified dashboard rows for active drivers, optionally for one dispatcher."""
        now = now or utcnow()
        views = []
        for driver in self.fleet.list_drivers(active_only=True):
            if dispatcher and driver.dispatcher != dispatcher:
                continue
            stop = self.fleet.current_stop(driver.id)
            views.append(build_driver_view(driver, stop, now, self.rate_fn, self.completed_window))
        return views

    def driver_view(self, driver_id: str, now: Optional[datetime] = None) -> DriverWithLocation:
        driver = self._require_driver(driver_id)
        stop = self.fleet.current_stop(driver_id)
        return build_driver_view(driver, stop, now or utcnow(), self.rate_fn, self.completed_window)

    def driver_ids_for_dispatcher(self, dispatcher: str) -> List[str]:
        return [d.id for d in self.fleet.list_drivers(active_only=False) if d.dispatcher == dispatcher]

    def update_location(
        self,
        driver_id: str,
        location: str,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        stop_type: Optional[str] = None,
        arrived_at: Optional[datetime] = None,
    ) -> Stop:
        """
        Record an arrival, or move the driver's open stop.

        Opens a new stop when the driver has none open; otherwise updates the
        open stop's location text and coordinates in place.

        Raises:
            NotFoundError: If the driver does not exist
            ConfigError: If stop_type is unknown
        """
        self._require_driver(driver_id)
        if stop_type is not None:
            stop_type = parse_stop_type(stop_type).value

        current = self.fleet.current_stop(driver_id)
        if current is not None and current.is_open:
            changes = {"location": location, "latitude": latitude, "longitude": longitude}
            if stop_type is not None:
                changes["stop_type"] = stop_type
            return self.fleet.save_stop(current.with_changes(**changes))

        stop = Stop(
            id=str(uuid4()),
            driver_id=driver_id,
            location=location,
            latitude=latitude,
            longitude=longitude,
            stop_type=stop_type or "regular",
            timestamp=ensure_utc(arrived_at) if arrived_at else utcnow(),
        )
        logger.info(f"Driver {driver_id} arrived at {location}")
        return self.fleet.open_stop(stop)

    def set_appointment(
        self,
        driver_id: str,
        appointment_time: datetime,
        stop_type: Optional[str] = None,
    ) -> Stop:
        """
        Set the appointment (and optionally the stop type) of the open stop.

        A new appointment time means a new stop key, so alerts start over.

        Raises:
            NotFoundError: If the driver has no open stop
            ConfigError: If stop_type is unknown
        """
        stop = self._require_open_stop(driver_id)
        changes = {"appointment_time": ensure_utc(appointment_time)}
        if stop_type is not None:
            changes["stop_type"] = parse_stop_type(stop_type).value
        return self.fleet.save_stop(stop.with_changes(**changes))

    def record_departure(self, driver_id: str, departure_time: Optional[datetime] = None) -> Stop:
        """
        Close the driver's open stop and freeze its final detention.

        Raises:
            NotFoundError: If the driver has no open stop
        """
        stop = self._require_open_stop(driver_id)
        departure_time = ensure_utc(departure_time) if departure_time else utcnow()

        try:
            minutes, cost = final_detention(stop, departure_time, self.rate_fn)
        except ConfigError as e:
            logger.error(f"Cannot compute final detention for stop {stop.id}: {e}")
            minutes, cost = None, None

        closed = self.fleet.save_stop(
            stop.with_changes(
                departure_time=departure_time,
                final_detention_minutes=minutes,
                final_detention_cost=cost,
            )
        )
        logger.info(f"Driver {driver_id} departed {stop.location} ({minutes} detention minutes)")
        return closed

    def add_driver(self, name: str, truck_number: str, dispatcher: str) -> Driver:
        if not name or not truck_number:
            raise ValueError("name and truck_number required")
        return self.fleet.add_driver(name.strip(), truck_number.strip(), dispatcher.strip())

    def update_driver(
        self,
        driver_id: str,
        name: Optional[str] = None,
        truck_number: Optional[str] = None,
        dispatcher: Optional[str] = None,
    ) -> Driver:
        """
        Edit roster fields; None leaves a field unchanged.

        Raises:
            NotFoundError: If the driver does not exist
            ValueError: If name or truck_number is blank
        """
        driver = self._require_driver(driver_id)
        changes = {}
        for field_name, value in (("name", name), ("truck_number", truck_number)):
            if value is None:
                continue
            if not value.strip():
                raise ValueError(f"{field_name} must not be empty")
            changes[field_name] = value.strip()
        if dispatcher is not None:
            changes["dispatcher"] = dispatcher.strip()
        if not changes:
            return driver
        return self.fleet.update_driver(replace(driver, **changes))

    def reset_driver(self, driver_id: str) -> Stop:
        """
        Start the driver's current stop over.

        Clears appointment, departure and final detention and sets the stop
        type back to regular. A closed stop is reopened at its original
        arrival time.

        Raises:
            NotFoundError: If the driver does not exist or has no stop
        """
        self._require_driver(driver_id)
        stop = self.fleet.current_stop(driver_id)
        if stop is None:
            raise NotFoundError(f"Driver {driver_id} has no stop to reset")
        reset = self.fleet.save_stop(
            stop.with_changes(
                stop_type="regular",
                appointment_time=None,
                departure_time=None,
                final_detention_minutes=None,
                final_detention_cost=None,
            )
        )
        logger.info(f"Driver {driver_id} reset at {stop.location}")
        return reset

    def deactivate_driver(self, driver_id: str) -> Driver:
        return self.fleet.deactivate_driver(driver_id)

    def dispatchers(self, drivers: Optional[Iterable[Driver]] = None) -> List[str]:
        drivers = self.fleet.list_drivers(active_only=True) if drivers is None else drivers
        return sorted({d.dispatcher for d in drivers if d.dispatcher})
