"""Publish public alerts for verified, high-severity events.

Alerting is best effort relative to persistence: by the time an alert is
attempted the event is already stored, and a failed publish is logged
without touching it.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import requests

from .config import CONFIG, Config
from .errors import DispatchError
from .models import DisasterEvent, isoformat, utc_now


logger = logging.getLogger(__name__)


def build_alert(event: DisasterEvent) -> Dict[str, Any]:
    """Return the subject, JSON message and attributes for ``event``."""
    message = {
        "eventId": event.id,
        "platform": event.platform,
        "text": event.text,
        "author": event.author,
        "location": event.location,
        "disasterScore": event.disaster_score,
        "url": event.url,
        "processedAt": event.processed_at,
        "verified": bool(event.verified),
    }
    return {
        "subject": f"Disaster Alert: {event.platform.upper()} - {event.location or 'Unknown Location'}",
        "message": json.dumps(message, ensure_ascii=False),
        "attributes": {
            "platform": event.platform,
            "severity": "HIGH" if event.disaster_score > 0.8 else "MEDIUM",
            "verified": "true" if event.verified else "false",
        },
    }


class WebhookNotifier:
    """Deliver notifications as JSON POSTs to a webhook URL."""

    def __init__(self, url: str, timeout: float = 10.0, session: requests.Session | None = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def publish(self, subject: str, message: str, attributes: Dict[str, str]) -> None:
        payload = {
            "subject": subject,
            "message": message,
            "attributes": attributes,
            "sentAt": isoformat(utc_now()),
        }
        try:
            resp = self.session.post(self.url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise DispatchError(f"webhook publish failed: {exc}") from exc


class AlertDispatcher:
    def __init__(self, notifier: Optional[Any] = None, config: Config | None = None):
        self.config = config or CONFIG
        if notifier is None and self.config.alerts_webhook_url:
            notifier = WebhookNotifier(self.config.alerts_webhook_url, self.config.alert_timeout_seconds)
        self.notifier = notifier

    def should_alert(self, event: DisasterEvent) -> bool:
        return event.verified == 1 and event.disaster_score > self.config.alert_threshold

    def dispatch(self, event: DisasterEvent) -> bool:
        """Publish an alert for ``event``. Returns whether it was sent."""
        if self.notifier is None:
            logger.warning("No alert transport configured; skipping alert for event %s", event.id)
            return False
        alert = build_alert(event)
        try:
            self.notifier.publish(alert["subject"], alert["message"], alert["attributes"])
        except Exception as exc:
            # DispatchError from the webhook, anything else from custom transports
            logger.error("Failed to send alert for event %s: %s", event.id, exc)
            return False
        logger.info("Disaster alert sent for event %s", event.id)
        return True
