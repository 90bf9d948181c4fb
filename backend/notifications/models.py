"""
Real-time event messages pushed to dashboard clients.

Every message is a JSON object with a "type" discriminator.
"""

from enum import Enum
from typing import Optional, Dict, Any

from detention.models import Alert, Driver, Stop


class EventType(str, Enum):
    """Types of real-time events."""
    NEW_ALERT = "new_alert"
    DRIVER_ADDED = "driver_added"
    DRIVER_UPDATED = "driver_updated"
    DRIVER_RESET = "driver_reset"
    DRIVER_DEACTIVATED = "driver_deactivated"
    LOCATION_UPDATE = "location_update"
    APPOINTMENT_UPDATE = "appointment_update"
    DEPARTURE_UPDATE = "departure_update"
    ALERTS_CLEARED = "alerts_cleared"


def new_alert_event(alert: Alert) -> Dict[str, Any]:
    """Wire shape for a newly created alert: {"type": "new_alert", "alert": {...}}."""
    return {"type": EventType.NEW_ALERT.value, "alert": alert.to_dict()}


def driver_event(event_type: EventType, driver: Driver) -> Dict[str, Any]:
    return {"type": event_type.value, "driver": driver.to_dict()}


def stop_event(event_type: EventType, stop: Stop) -> Dict[str, Any]:
    return {"type": event_type.value, "driver_id": stop.driver_id, "location": stop.to_dict()}


def alerts_cleared_event(count: int, scope: Optional[str] = None) -> Dict[str, Any]:
    return {"type": EventType.ALERTS_CLEARED.value, "count": count, "scope": scope or "all"}
