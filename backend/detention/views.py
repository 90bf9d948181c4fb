"""Driver dashboard views - classification joined with the roster."""

import logging
from datetime import datetime, timedelta
from typing import Optional

from .classifier import DEFAULT_COMPLETED_WINDOW, DriverStatus, classify
from .models import Driver, DriverWithLocation, Stop
from .rates import RateFunction, cost_for_minutes
from .thresholds import ConfigError

logger = logging.getLogger(__name__)


def build_driver_view(
    driver: Driver,
    stop: Optional[Stop],
    now: datetime,
    rate_fn: RateFunction = cost_for_minutes,
    completed_window: timedelta = DEFAULT_COMPLETED_WINDOW,
) -> DriverWithLocation:
    """
    Combine a driver and its current stop into the dashboard view.

    A stop with an unknown stop type is shown as at-stop with no detention
    math rather than failing the whole listing.
    """
    try:
        result = classify(stop, now, rate_fn, completed_window)
    except ConfigError as e:
        logger.error(f"Cannot classify driver {driver.id}: {e}")
        return DriverWithLocation(
            driver=driver,
            current_stop=stop,
            status=DriverStatus.AT_STOP.value,
            duration="At stop (unknown stop type)",
        )

    return DriverWithLocation(
        driver=driver,
        current_stop=stop,
        status=result.status.value,
        duration=result.duration,
        detention_minutes=result.detention_minutes,
        detention_cost=result.detention_cost,
        time_to_detention=result.time_to_detention,
        is_in_detention=result.is_in_detention,
    )
