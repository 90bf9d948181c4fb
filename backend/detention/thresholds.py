"""
Stop-type detention thresholds.

Each stop type has a fixed amount of free time before detention starts and an
optional warning lead before that point. The table is a closed enumeration:
unknown stop types are configuration errors, never silently defaulted.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Union


class ConfigError(ValueError):
    """Raised when a stop carries a stop type with no configured thresholds."""

    def __init__(self, stop_type):
        super().__init__(f"Unknown stop type: {stop_type!r}")
        self.stop_type = stop_type


class StopType(str, Enum):
    """Categories of load/location governing detention thresholds."""
    REGULAR = "regular"
    MULTI_STOP = "multi-stop"
    RAIL = "rail"
    NO_BILLING = "no-billing"
    DROP_HOOK = "drop-hook"

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS = {
    StopType.REGULAR: "Regular",
    StopType.MULTI_STOP: "Multi-Stop",
    StopType.RAIL: "Rail",
    StopType.NO_BILLING: "No Billing",
    StopType.DROP_HOOK: "Drop/Hook",
}


@dataclass(frozen=True)
class StopThresholds:
    """Free time and warning lead for one stop type, in minutes."""
    detention_after_minutes: int
    warning_lead_minutes: Optional[int] = None  # None: no warning stage

    @property
    def warning_starts_at_minutes(self) -> Optional[int]:
        if self.warning_lead_minutes is None:
            return None
        return self.detention_after_minutes - self.warning_lead_minutes


THRESHOLD_TABLE: Dict[StopType, StopThresholds] = {
    StopType.REGULAR: StopThresholds(detention_after_minutes=120, warning_lead_minutes=30),
    StopType.MULTI_STOP: StopThresholds(detention_after_minutes=60, warning_lead_minutes=15),
    StopType.RAIL: StopThresholds(detention_after_minutes=60),
    StopType.NO_BILLING: StopThresholds(detention_after_minutes=15),
    StopType.DROP_HOOK: StopThresholds(detention_after_minutes=30),
}


def parse_stop_type(value: Union[str, StopType]) -> StopType:
    """
    Resolve a stop type value.

    Raises:
        ConfigError: If value is not one of the known stop types
    """
    if isinstance(value, StopType):
        return value
    try:
        return StopType(value)
    except ValueError:
        raise ConfigError(value) from None


def thresholds_for(stop_type: Union[str, StopType]) -> StopThresholds:
    """
    Look up detention thresholds for a stop type.

    Raises:
        ConfigError: If stop_type is unknown
    """
    return THRESHOLD_TABLE[parse_stop_type(stop_type)]
