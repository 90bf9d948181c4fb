"""
Driver status classification - Pure domain logic

Derives a driver's displayed status and detention timing from its current
stop. The detention clock starts at the later of arrival and appointment:
arriving early does not start billable time.

Statuses:
- active: no stop, or a stop closed outside the completed display window
- at-stop: on the clock, before any warning stage
- warning: inside the warning lead before detention
- detention: free time exhausted, billable minutes accruing
- completed: stop closed within the completed display window

"critical" is an alert type, never a status.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Tuple

from .models import Stop, ensure_utc
from .rates import RateFunction, cost_for_minutes
from .thresholds import thresholds_for

DEFAULT_COMPLETED_WINDOW = timedelta(minutes=60)


class DriverStatus(str, Enum):
    ACTIVE = "active"
    AT_STOP = "at-stop"
    WARNING = "warning"
    DETENTION = "detention"
    COMPLETED = "completed"


@dataclass(frozen=True)
class Classification:
    """Status and timing fields for one driver at one instant."""
    status: DriverStatus
    duration: str = "Standby"
    detention_minutes: int = 0
    detention_cost: float = 0.0
    time_to_detention: Optional[int] = None  # Minutes until detention starts
    is_in_detention: bool = False
    elapsed_minutes: int = 0


def format_minutes(total_minutes: int, suffix: str = "") -> str:
    """Format minutes as '1h 5m' / '25m' with an optional suffix."""
    hours, minutes = divmod(max(total_minutes, 0), 60)
    if hours > 0:
        return f"{hours}h {minutes}m{suffix}"
    return f"{minutes}m{suffix}"


def detention_clock_start(stop: Stop) -> datetime:
    """The later of arrival and appointment; arrival when there is no appointment."""
    arrival = ensure_utc(stop.timestamp)
    appointment = ensure_utc(stop.appointment_time)
    if appointment is None:
        return arrival
    return max(arrival, appointment)


def elapsed_minutes(stop: Stop, until: datetime) -> int:
    """Whole minutes on the detention clock, clamped at zero."""
    delta = ensure_utc(until) - detention_clock_start(stop)
    return max(int(delta.total_seconds() // 60), 0)


def final_detention(
    stop: Stop,
    departure_time: datetime,
    rate_fn: RateFunction = cost_for_minutes,
) -> Tuple[int, float]:
    """
    Billable detention for a stop that departed at departure_time.

    Returns:
        (minutes, cost) - both zero if the driver left before detention

    Raises:
        ConfigError: If the stop type is unknown
    """
    thresholds = thresholds_for(stop.stop_type)
    minutes = max(elapsed_minutes(stop, departure_time) - thresholds.detention_after_minutes, 0)
    return minutes, rate_fn(stop.stop_type, minutes)


def classify(
    stop: Optional[Stop],
    now: datetime,
    rate_fn: RateFunction = cost_for_minutes,
    completed_window: timedelta = DEFAULT_COMPLETED_WINDOW,
) -> Classification:
    """
    Classify a driver by its current stop.

    Args:
        stop: The driver's most recent stop, or None
        now: Evaluation time
        rate_fn: Detention cost function
        completed_window: How long a closed stop shows as completed

    Returns:
        Classification for the driver

    Raises:
        ConfigError: If an open stop has an unknown stop type
    """
    if stop is None:
        return Classification(status=DriverStatus.ACTIVE)

    now = ensure_utc(now)

    if not stop.is_open:
        if now - stop.departure_time > completed_window:
            return Classification(status=DriverStatus.ACTIVE)
        minutes = stop.final_detention_minutes or 0
        if minutes > 0:
            duration = format_minutes(minutes, " detention (completed)")
        else:
            duration = "Completed"
        return Classification(
            status=DriverStatus.COMPLETED,
            duration=duration,
            detention_minutes=minutes,
            detention_cost=stop.final_detention_cost or 0.0,
        )

    thresholds = thresholds_for(stop.stop_type)
    elapsed = elapsed_minutes(stop, now)
    detention_after = thresholds.detention_after_minutes

    if elapsed >= detention_after:
        minutes = elapsed - detention_after
        return Classification(
            status=DriverStatus.DETENTION,
            duration=format_minutes(minutes, " detention"),
            detention_minutes=minutes,
            detention_cost=rate_fn(stop.stop_type, minutes),
            is_in_detention=True,
            elapsed_minutes=elapsed,
        )

    remaining = detention_after - elapsed
    warning_at = thresholds.warning_starts_at_minutes
    status = DriverStatus.AT_STOP
    if warning_at is not None and elapsed >= warning_at:
        status = DriverStatus.WARNING

    return Classification(
        status=status,
        duration=format_minutes(remaining, " to detention"),
        time_to_detention=remaining,
        elapsed_minutes=elapsed,
    )
