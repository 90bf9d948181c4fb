"""
Detention package - stop thresholds, status classification and alert rules.

Submodules:
- thresholds: Stop-type threshold table
- rates: Detention cost functions
- classifier: Pure status/timing classification
- alert_engine: Warning / critical / reminder alert rules
- views: Dashboard view builder
- models: Drivers, stops, alerts, settings
"""

from .thresholds import ConfigError, StopType, StopThresholds, thresholds_for
from .classifier import Classification, DriverStatus, classify
from .models import Alert, AlertType, Driver, NewAlert, Settings, Stop

__all__ = [
    "ConfigError",
    "StopType",
    "StopThresholds",
    "thresholds_for",
    "Classification",
    "DriverStatus",
    "classify",
    "Alert",
    "AlertType",
    "Driver",
    "NewAlert",
    "Settings",
    "Stop",
]
