"""
Fleet domain models for the detention monitor.

Defines drivers, their stops (driver locations), alerts raised against those
stops, and the global settings record. All timestamps are timezone-aware UTC.
"""

from dataclasses import dataclass, asdict, replace
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from enum import Enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class AlertType(str, Enum):
    """Types of dispatcher alerts."""
    WARNING = "warning"
    CRITICAL = "critical"
    REMINDER = "reminder"


@dataclass(frozen=True)
class Driver:
    """A truck driver on the fleet roster."""
    id: str
    name: str
    truck_number: str
    dispatcher: str
    is_active: bool = True
    created_at: datetime = None

    def __post_init__(self):
        if self.created_at is None:
            object.__setattr__(self, 'created_at', utcnow())

    def to_mongo_doc(self) -> dict:
        """Convert to MongoDB document."""
        return asdict(self)

    @classmethod
    def from_mongo_doc(cls, doc: dict) -> "Driver":
        return cls(
            id=doc["id"],
            name=doc["name"],
            truck_number=doc["truck_number"],
            dispatcher=doc.get("dispatcher", ""),
            is_active=doc.get("is_active", True),
            created_at=ensure_utc(doc.get("created_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        doc = asdict(self)
        doc["created_at"] = _iso(self.created_at)
        return doc


@dataclass(frozen=True)
class Stop:
    """
    A driver's stop (driver location record).

    A stop is open while departure_time is None. Recording the departure
    freezes final_detention_minutes and final_detention_cost.
    """
    id: str
    driver_id: str
    location: str
    stop_type: str = "regular"
    timestamp: datetime = None  # Arrival / record time
    appointment_time: Optional[datetime] = None
    departure_time: Optional[datetime] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    final_detention_minutes: Optional[int] = None
    final_detention_cost: Optional[float] = None

    def __post_init__(self):
        if self.timestamp is None:
            object.__setattr__(self, 'timestamp', utcnow())
        object.__setattr__(self, 'timestamp', ensure_utc(self.timestamp))
        object.__setattr__(self, 'appointment_time', ensure_utc(self.appointment_time))
        object.__setattr__(self, 'departure_time', ensure_utc(self.departure_time))

    @property
    def is_open(self) -> bool:
        return self.departure_time is None

    @property
    def alert_key(self) -> str:
        """Identity of the stop instance that alerts are deduplicated against."""
        if self.appointment_time is None:
            return f"{self.id}@arrival"
        return f"{self.id}@{self.appointment_time.isoformat()}"

    def with_changes(self, **changes) -> "Stop":
        return replace(self, **changes)

    def to_mongo_doc(self) -> dict:
        """Convert to MongoDB document."""
        doc = asdict(self)
        # Partial unique index key: at most one open stop per driver
        doc["is_open"] = self.is_open
        return doc

    @classmethod
    def from_mongo_doc(cls, doc: dict) -> "Stop":
        return cls(
            id=doc["id"],
            driver_id=doc["driver_id"],
            location=doc["location"],
            stop_type=doc.get("stop_type", "regular"),
            timestamp=doc.get("timestamp"),
            appointment_time=doc.get("appointment_time"),
            departure_time=doc.get("departure_time"),
            latitude=doc.get("latitude"),
            longitude=doc.get("longitude"),
            final_detention_minutes=doc.get("final_detention_minutes"),
            final_detention_cost=doc.get("final_detention_cost"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        doc = asdict(self)
        for key in ("timestamp", "appointment_time", "departure_time"):
            doc[key] = _iso(doc[key])
        return doc


@dataclass(frozen=True)
class NewAlert:
    """An alert the engine has decided to raise, before persistence."""
    driver_id: str
    alert_type: AlertType
    message: str
    stop_key: str
    appointment_time: Optional[datetime] = None
    detention_bucket: int = 0  # Detention minute multiple for reminders, 0 otherwise
    timestamp: datetime = None

    def __post_init__(self):
        if self.timestamp is None:
            object.__setattr__(self, 'timestamp', utcnow())

    @property
    def dedupe_key(self) -> tuple:
        return (self.driver_id, self.stop_key, self.alert_type.value, self.detention_bucket)


@dataclass(frozen=True)
class Alert:
    """A persisted dispatcher alert. Only is_read ever changes."""
    id: str
    driver_id: str
    alert_type: AlertType
    message: str
    stop_key: str
    appointment_time: Optional[datetime] = None
    detention_bucket: int = 0
    is_read: bool = False
    timestamp: datetime = None

    def __post_init__(self):
        if self.timestamp is None:
            object.__setattr__(self, 'timestamp', utcnow())

    @classmethod
    def from_new(cls, alert_id: str, new_alert: NewAlert) -> "Alert":
        return cls(
            id=alert_id,
            driver_id=new_alert.driver_id,
            alert_type=new_alert.alert_type,
            message=new_alert.message,
            stop_key=new_alert.stop_key,
            appointment_time=new_alert.appointment_time,
            detention_bucket=new_alert.detention_bucket,
            timestamp=new_alert.timestamp,
        )

    @property
    def dedupe_key(self) -> tuple:
        return (self.driver_id, self.stop_key, self.alert_type.value, self.detention_bucket)

    def to_mongo_doc(self) -> dict:
        """Convert to MongoDB document."""
        doc = asdict(self)
        doc['alert_type'] = self.alert_type.value
        return doc

    @classmethod
    def from_mongo_doc(cls, doc: dict) -> "Alert":
        return cls(
            id=doc["id"],
            driver_id=doc["driver_id"],
            alert_type=AlertType(doc["alert_type"]),
            message=doc["message"],
            stop_key=doc["stop_key"],
            appointment_time=ensure_utc(doc.get("appointment_time")),
            detention_bucket=doc.get("detention_bucket", 0),
            is_read=doc.get("is_read", False),
            timestamp=ensure_utc(doc.get("timestamp")),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict (wire shape for clients)."""
        return {
            "id": self.id,
            "driver_id": self.driver_id,
            "type": self.alert_type.value,
            "message": self.message,
            "is_read": self.is_read,
            "timestamp": _iso(self.timestamp),
            "appointment_time": _iso(self.appointment_time),
            "detention_bucket": self.detention_bucket,
        }


@dataclass(frozen=True)
class Settings:
    """Global threshold defaults. Stop-type thresholds take precedence."""
    warning_threshold_hours: int = 2
    critical_threshold_hours: int = 3

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DriverWithLocation:
    """Derived, never persisted view of a driver and its current stop."""
    driver: Driver
    current_stop: Optional[Stop]
    status: str
    duration: str = ""
    detention_minutes: int = 0
    detention_cost: float = 0.0
    time_to_detention: Optional[int] = None
    is_in_detention: bool = False

    def to_dict(self) -> Dict[str, Any]:
        doc = self.driver.to_dict()
        doc.update({
            "current_location": self.current_stop.to_dict() if self.current_stop else None,
            "status": self.status,
            "duration": self.duration,
            "detention_minutes": self.detention_minutes,
            "detention_cost": self.detention_cost,
            "time_to_detention": self.time_to_detention,
            "is_in_detention": self.is_in_detention,
        })
        return doc
