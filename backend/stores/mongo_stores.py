"""
MongoDB stores - drivers, stops, alerts, settings and push tokens.

Handles:
- Index creation, including the unique alert dedupe index
- Mapping DuplicateKeyError to DuplicateAlertError and StopConflictError
- Converting documents to domain models
"""

import logging
from dataclasses import asdict
from typing import Iterable, List, Optional, Set
from uuid import uuid4

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from detention.models import Alert, Driver, NewAlert, Settings, Stop, utcnow

from .contracts import (
    AlertFilter,
    AlertStore,
    DuplicateAlertError,
    FleetStore,
    NotFoundError,
    PushTokenStore,
    StopConflictError,
)

logger = logging.getLogger(__name__)

ALERT_DEDUPE_INDEX = "alert_dedupe"
OPEN_STOP_INDEX = "one_open_stop_per_driver"


def connect(mongo_url: str, db_name: str) -> Database:
    """Open a tz-aware synchronous client and return the database."""
    client = MongoClient(mongo_url, tz_aware=True, serverSelectionTimeoutMS=5000)
    return client[db_name]


def _alert_query(alert_filter: Optional[AlertFilter]) -> dict:
    query = {}
    if alert_filter is None:
        return query
    if alert_filter.driver_ids is not None:
        query["driver_id"] = {"$in": list(alert_filter.driver_ids)}
    if alert_filter.stop_key is not None:
        query["stop_key"] = alert_filter.stop_key
    if alert_filter.unread_only:
        query["is_read"] = False
    return query


class MongoAlertStore(AlertStore):
    """
    Alert persistence with store-enforced uniqueness per dedupe key.

    Keys live in their own alert_keys collection under the unique
    alert_dedupe index. Clearing alerts only deletes from alerts; keys go
    away through prune_keys once their stop is no longer open.
    """

    def __init__(self, db: Database):
        """
        Initialize alert store.

        Args:
            db: MongoDB database instance
        """
        self.db = db
        self._ensure_indexes()

    def _ensure_indexes(self):
        """Create MongoDB indexes for queries and dedupe."""
        self.db.alert_keys.create_index(
            [
                ("driver_id", ASCENDING),
                ("stop_key", ASCENDING),
                ("alert_type", ASCENDING),
                ("detention_bucket", ASCENDING),
            ],
            unique=True,
            name=ALERT_DEDUPE_INDEX,
        )
        self.db.alert_keys.create_index("stop_key")
        self.db.alerts.create_index("id", unique=True)
        self.db.alerts.create_index([("driver_id", ASCENDING), ("stop_key", ASCENDING)])
        self.db.alerts.create_index("timestamp")
        self.db.alerts.create_index("is_read")

    def create_alert(self, new_alert: NewAlert) -> Alert:
        """
        Claim the dedupe key, then insert the alert.

        Raises:
            DuplicateAlertError: If the dedupe key was already claimed
        """
        alert = Alert.from_new(str(uuid4()), new_alert)
        driver_id, stop_key, alert_type, bucket = new_alert.dedupe_key
        key_doc = {
            "driver_id": driver_id,
            "stop_key": stop_key,
            "alert_type": alert_type,
            "detention_bucket": bucket,
            "alert_id": alert.id,
            "created_at": alert.timestamp,
        }
        try:
            self.db.alert_keys.insert_one(key_doc)
        except DuplicateKeyError:
            raise DuplicateAlertError(new_alert.dedupe_key) from None

        try:
            self.db.alerts.insert_one(alert.to_mongo_doc())
        except Exception:
            # Release the key so the next tick can raise the alert again
            self.db.alert_keys.delete_one({"alert_id": alert.id})
            raise
        logger.info(f"[ALERTS] Created {alert.alert_type.value} alert {alert.id} for driver {alert.driver_id}")
        return alert

    def list_alerts(self, alert_filter: Optional[AlertFilter] = None) -> List[Alert]:
        cursor = self.db.alerts.find(_alert_query(alert_filter)).sort(
            [("timestamp", ASCENDING), ("detention_bucket", ASCENDING)]
        )
        return [Alert.from_mongo_doc(doc) for doc in cursor]

    def mark_read(self, alert_id: str) -> bool:
        result = self.db.alerts.update_one({"id": alert_id}, {"$set": {"is_read": True}})
        return result.matched_count > 0

    def mark_all_read(self, driver_ids: Optional[Iterable[str]] = None) -> int:
        query = {"is_read": False}
        if driver_ids is not None:
            query["driver_id"] = {"$in": list(driver_ids)}
        result = self.db.alerts.update_many(query, {"$set": {"is_read": True}})
        return result.modified_count

    def clear_history(self) -> int:
        result = self.db.alerts.delete_many({"is_read": True})
        logger.info(f"[ALERTS] Cleared {result.deleted_count} read alerts")
        return result.deleted_count

    def clear_all(self) -> int:
        result = self.db.alerts.delete_many({})
        logger.info(f"[ALERTS] Cleared all {result.deleted_count} alerts")
        return result.deleted_count

    def existing_keys(self, driver_id: str, stop_key: str) -> Set[tuple]:
        cursor = self.db.alert_keys.find({"driver_id": driver_id, "stop_key": stop_key})
        return {
            (doc["driver_id"], doc["stop_key"], doc["alert_type"], doc["detention_bucket"])
            for doc in cursor
        }

    def prune_keys(self, keep_stop_keys: Iterable[str]) -> int:
        result = self.db.alert_keys.delete_many({"stop_key": {"$nin": list(keep_stop_keys)}})
        logger.info(f"[ALERTS] Pruned {result.deleted_count} dedupe keys of closed stops")
        return result.deleted_count


class MongoFleetStore(FleetStore):
    """Driver roster, stops and the settings record."""

    def __init__(self, db: Database):
        self.db = db
        self._ensure_indexes()

    def _ensure_indexes(self):
        self.db.drivers.create_index("id", unique=True)
        self.db.stops.create_index("id", unique=True)
        self.db.stops.create_index([("driver_id", ASCENDING), ("departure_time", ASCENDING)])
        self.db.stops.create_index(
            "driver_id",
            unique=True,
            partialFilterExpression={"is_open": True},
            name=OPEN_STOP_INDEX,
        )

    def add_driver(self, name: str, truck_number: str, dispatcher: str) -> Driver:
        driver = Driver(id=str(uuid4()), name=name, truck_number=truck_number, dispatcher=dispatcher)
        self.db.drivers.insert_one(driver.to_mongo_doc())
        logger.info(f"Added driver {driver.id} ({name}, truck {truck_number})")
        return driver

    def get_driver(self, driver_id: str) -> Optional[Driver]:
        doc = self.db.drivers.find_one({"id": driver_id})
        return Driver.from_mongo_doc(doc) if doc else None

    def list_drivers(self, active_only: bool = True) -> List[Driver]:
        query = {"is_active": True} if active_only else {}
        return [Driver.from_mongo_doc(doc) for doc in self.db.drivers.find(query).sort("name", ASCENDING)]

    def deactivate_driver(self, driver_id: str) -> Driver:
        result = self.db.drivers.update_one({"id": driver_id}, {"$set": {"is_active": False}})
        if result.matched_count == 0:
            raise NotFoundError(f"Driver {driver_id} not found")
        return self.get_driver(driver_id)

    def update_driver(self, driver: Driver) -> Driver:
        result = self.db.drivers.replace_one({"id": driver.id}, driver.to_mongo_doc())
        if result.matched_count == 0:
            raise NotFoundError(f"Driver {driver.id} not found")
        return driver

    def current_stop(self, driver_id: str) -> Optional[Stop]:
        doc = self.db.stops.find_one({"driver_id": driver_id, "departure_time": None})
        if doc is None:
            doc = self.db.stops.find_one(
                {"driver_id": driver_id},
                sort=[("departure_time", DESCENDING)],
            )
        return Stop.from_mongo_doc(doc) if doc else None

    def list_open_stops(self) -> List[Stop]:
        return [Stop.from_mongo_doc(doc) for doc in self.db.stops.find({"departure_time": None})]

    def open_stop(self, stop: Stop) -> Stop:
        if self.db.drivers.find_one({"id": stop.driver_id}) is None:
            raise NotFoundError(f"Driver {stop.driver_id} not found")
        if self.db.stops.find_one({"driver_id": stop.driver_id, "departure_time": None}) is not None:
            raise StopConflictError(f"Driver {stop.driver_id} already has an open stop")
        try:
            self.db.stops.insert_one(stop.to_mongo_doc())
        except DuplicateKeyError:
            # Another arrival for this driver won between the check and the insert
            raise StopConflictError(f"Driver {stop.driver_id} already has an open stop") from None
        return stop

    def save_stop(self, stop: Stop) -> Stop:
        doc = stop.to_mongo_doc()
        try:
            result = self.db.stops.replace_one({"id": stop.id}, doc)
        except DuplicateKeyError:
            raise StopConflictError(f"Driver {stop.driver_id} already has an open stop") from None
        if result.matched_count == 0:
            raise NotFoundError(f"Stop {stop.id} not found")
        return stop

    def get_settings(self) -> Settings:
        doc = self.db.settings.find_one({"_id": "global"})
        if doc is None:
            # Create default settings if none exist
            settings = Settings()
            self.db.settings.update_one({"_id": "global"}, {"$setOnInsert": asdict(settings)}, upsert=True)
            return settings
        return Settings(
            warning_threshold_hours=doc.get("warning_threshold_hours", 2),
            critical_threshold_hours=doc.get("critical_threshold_hours", 3),
        )

    def update_settings(self, settings: Settings) -> Settings:
        self.db.settings.update_one({"_id": "global"}, {"$set": asdict(settings)}, upsert=True)
        return settings


class MongoPushTokenStore(PushTokenStore):
    def __init__(self, db: Database):
        self.db = db
        self.db.push_tokens.create_index("token", unique=True, sparse=True)

    def register_push_token(self, token: str, dispatcher: Optional[str] = None) -> None:
        # Upsert: update if exists, insert if not
        self.db.push_tokens.update_one(
            {"token": token},
            {"$set": {"token": token, "dispatcher": dispatcher, "registered_at": utcnow()}},
            upsert=True,
        )
        logger.info(f"[PUSH] Registered push token for dispatcher {dispatcher}")

    def list_push_tokens(self) -> List[str]:
        return [doc["token"] for doc in self.db.push_tokens.find({}, {"token": 1})]
