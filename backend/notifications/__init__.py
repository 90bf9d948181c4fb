"""
Notifications package - real-time delivery of detention alerts

Submodules:
- models: WebSocket event messages
- broadcaster: WebSocket connection hub
- expo_push: Expo push notification client
- notifier: Alert fan-out to WebSocket clients and push devices
- scheduler: Periodic alert evaluation and daily cleanup
"""

from .broadcaster import ConnectionManager
from .expo_push import ExpoPushClient
from .notifier import AlertNotifier
from .scheduler import DetentionMonitor, TickResult

__all__ = [
    "ConnectionManager",
    "ExpoPushClient",
    "AlertNotifier",
    "DetentionMonitor",
    "TickResult",
]
