from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from .contracts import AlertStore, FleetStore, PushTokenStore
from .memory_stores import InMemoryAlertStore, InMemoryFleetStore, InMemoryPushTokenStore
from .mongo_stores import MongoAlertStore, MongoFleetStore, MongoPushTokenStore, connect


@dataclass
class StoreSet:
    alerts: AlertStore
    fleet: FleetStore
    push_tokens: PushTokenStore


def _build_prod() -> StoreSet:
    db = connect(
        os.environ.get("MONGO_URL", "mongodb://localhost:27017"),
        os.environ.get("DB_NAME", "dockwatch"),
    )
    return StoreSet(
        alerts=MongoAlertStore(db),
        fleet=MongoFleetStore(db),
        push_tokens=MongoPushTokenStore(db),
    )


def _build_memory() -> StoreSet:
    return StoreSet(
        alerts=InMemoryAlertStore(),
        fleet=InMemoryFleetStore(),
        push_tokens=InMemoryPushTokenStore(),
    )


_store_cache: Optional[StoreSet] = None


def load_stores(mode: Optional[str] = None) -> StoreSet:
    global _store_cache
    active_mode = (mode or os.environ.get("DOCKWATCH_MODE", "prod")).lower()
    if _store_cache and mode is None:
        return _store_cache
    if active_mode in {"demo", "test"}:
        _store_cache = _build_memory()
    else:
        _store_cache = _build_prod()
    return _store_cache


def get_stores() -> StoreSet:
    return load_stores()


def reload_stores(mode: Optional[str] = None) -> StoreSet:
    global _store_cache
    _store_cache = None
    return load_stores(mode)
