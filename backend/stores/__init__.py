from .contracts import (
    AlertFilter,
    DuplicateAlertError,
    NotFoundError,
    StopConflictError,
    StoreError,
)
from .registry import get_stores, reload_stores, load_stores, StoreSet

__all__ = [
    "AlertFilter",
    "DuplicateAlertError",
    "NotFoundError",
    "StopConflictError",
    "StoreError",
    "get_stores",
    "reload_stores",
    "load_stores",
    "StoreSet",
]
