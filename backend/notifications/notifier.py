"""
Alert notifier - delivers persisted alerts to dispatchers.

Two channels:
- in-app: JSON event over the WebSocket hub
- push: Expo notification to each registered dispatcher device

Delivery is fire-and-forget. The alert is already persisted, so a failed send
is logged and not retried; clients see any still-unread alert on their next
refresh.
"""

import logging
from typing import Any, Dict, Optional

from detention.models import Alert
from stores.contracts import PushTokenStore

from .broadcaster import ConnectionManager
from .expo_push import ExpoPushClient
from .models import new_alert_event

logger = logging.getLogger(__name__)


class AlertNotifier:
    """Fan-out of alert events to connected clients and push devices."""

    def __init__(
        self,
        hub: ConnectionManager,
        push_tokens: Optional[PushTokenStore] = None,
        expo_client: Optional[ExpoPushClient] = None,
    ):
        self.hub = hub
        self.push_tokens = push_tokens
        self.expo_client = expo_client

    def broadcast(self, event: Dict[str, Any]) -> None:
        """Publish an event to all WebSocket clients."""
        try:
            self.hub.publish(event)
        except Exception as e:
            logger.error(f"Failed to publish {event.get('type')} event: {e}")

    def notify_alert(self, alert: Alert) -> int:
        """
        Deliver a new alert on every channel.

        Returns:
            Number of push notifications accepted by Expo
        """
        self.broadcast(new_alert_event(alert))

        if self.push_tokens is None or self.expo_client is None:
            return 0

        try:
            tokens = self.push_tokens.list_push_tokens()
        except Exception as e:
            logger.error(f"[PUSH] Could not load push tokens: {e}")
            return 0

        sent = 0
        for token in tokens:
            if self.expo_client.send_alert_notification(token, alert):
                sent += 1
        if tokens and sent < len(tokens):
            logger.warning(f"[PUSH] Alert {alert.id} reached {sent}/{len(tokens)} devices")
        return sent

    def close(self):
        """Close resources."""
        if self.expo_client:
            self.expo_client.close()
