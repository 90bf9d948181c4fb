"""
Expo Push Notifications Client

Sends detention alerts to dispatcher devices via the Expo Push API.
https://docs.expo.dev/push-notifications/overview/

Alerts go out on the "detention-alerts" Android channel. Warnings are
delivered quietly at normal priority; critical and reminder alerts sound and
use high priority. Messages expire after an hour.
"""

import httpx
import logging
from typing import Optional, Dict, Any

from detention.models import Alert, AlertType

logger = logging.getLogger(__name__)

# Expo Push API endpoint
EXPO_PUSH_API_URL = "https://exp.host/--/api/v2/push/send"

ALERT_CHANNEL_ID = "detention-alerts"
MESSAGE_TTL_SECONDS = 3600

ALERT_TITLES = {
    AlertType.WARNING: "Approaching detention",
    AlertType.CRITICAL: "Detention started",
    AlertType.REMINDER: "Still in detention",
}

# (priority, sound) per alert type
ALERT_DELIVERY = {
    AlertType.WARNING: ("default", None),
    AlertType.CRITICAL: ("high", "default"),
    AlertType.REMINDER: ("high", "default"),
}


def is_expo_token(push_token: Optional[str]) -> bool:
    return bool(push_token) and push_token.startswith("ExponentPushToken[")


def build_alert_message(push_token: str, alert: Alert) -> Dict[str, Any]:
    """Expo message for one device and one alert."""
    priority, sound = ALERT_DELIVERY[alert.alert_type]
    message: Dict[str, Any] = {
        "to": push_token,
        "title": ALERT_TITLES[alert.alert_type],
        "body": alert.message,
        "channelId": ALERT_CHANNEL_ID,
        "priority": priority,
        "ttl": MESSAGE_TTL_SECONDS,
        "data": {
            "type": "new_alert",
            "alertId": alert.id,
            "alertType": alert.alert_type.value,
            "driverId": alert.driver_id,
            "detentionBucket": alert.detention_bucket,
        },
    }
    if sound:
        message["sound"] = sound
    return message


class ExpoPushClient:
    """Client for sending push notifications via Expo."""

    def __init__(self, access_token: Optional[str] = None, client: Optional[httpx.Client] = None):
        """
        Initialize Expo push client.

        Args:
            access_token: Optional Expo access token (enhanced push security)
            client: Optional preconfigured httpx client
        """
        self.access_token = access_token
        self.client = client or httpx.Client(timeout=10.0)

    def send_alert_notification(self, push_token: str, alert: Alert) -> bool:
        """
        Send a detention alert to one device.

        Returns:
            True if Expo accepted the message, False otherwise
        """
        if not is_expo_token(push_token):
            logger.warning(f"[PUSH] Skipping invalid push token: {(push_token or '')[:20]}...")
            return False
        return self.send_message(build_alert_message(push_token, alert))

    def send_message(self, message: Dict[str, Any]) -> bool:
        """
        Post one message to the Expo push API.

        Returns:
            True if the push ticket is ok, False on HTTP or ticket errors
        """
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"

        try:
            response = self.client.post(EXPO_PUSH_API_URL, json=message, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"[PUSH] Expo request failed: {e}")
            return False

        if response.status_code != 200:
            logger.error(f"[PUSH] Expo API error: {response.status_code} {response.text}")
            return False

        ticket = response.json().get("data", {})
        if ticket.get("status") == "error":
            details = ticket.get("details", {}).get("error", "")
            logger.error(f"[PUSH] Expo rejected message: {ticket.get('message', 'Unknown error')} {details}".rstrip())
            return False

        logger.info(f"[PUSH] Sent to {message['to'][:30]}... (title: {message.get('title', '')[:30]})")
        return True

    def close(self):
        """Close HTTP client."""
        self.client.close()
