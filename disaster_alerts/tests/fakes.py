"""Canned model answers and in-memory stand-ins for external services."""

import json
from typing import List, Optional

from disaster_alerts.models import Coordinates, HazardSignal


FLOOD_TEXT = "Flood warning in downtown area, roads blocked"
CROISSANT_TEXT = "This croissant is absolutely devastating, best I've ever had"
BAKERY_TEXT = "Best croissant in town, so flaky and buttery"

FLOOD_RESPONSE = json.dumps(
    {
        "isDisaster": True,
        "disasterType": "flood",
        "severity": 0.85,
        "confidence": 0.9,
        "entities": [{"text": "downtown", "type": "LOCATION", "confidence": 0.8}],
        "sentiment": {"label": "NEGATIVE", "confidence": 0.8},
        "keyPhrases": [{"text": "roads blocked", "confidence": 0.7}],
        "location": "downtown",
        "reasoning": "Active flood warning with blocked roads",
    }
)

NOT_DISASTER_RESPONSE = json.dumps(
    {
        "isDisaster": False,
        "disasterType": None,
        "severity": 0.1,
        "confidence": 0.95,
        "entities": [],
        "sentiment": {"label": "POSITIVE", "confidence": 0.9},
        "keyPhrases": [],
        "location": None,
        "reasoning": "This is about food, not a disaster",
    }
)


def failing_llm(prompt):
    """Stand-in for an unreachable model endpoint."""
    raise ConnectionError("model endpoint unreachable")


class StubHazardClient:
    """Hazard source returning a fixed signal and recording calls."""

    def __init__(self, severity: float = 0.7, source: str = "stub"):
        self.signal = HazardSignal(severity=severity, source=source)
        self.calls: List[Optional[Coordinates]] = []

    def fetch(self, coordinates, now=None):
        self.calls.append(coordinates)
        return self.signal


class RecordingNotifier:
    """Alert transport that keeps every published alert in memory."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.published: List[dict] = []

    def publish(self, subject, message, attributes):
        if self.fail:
            raise RuntimeError("notification service down")
        self.published.append({"subject": subject, "message": message, "attributes": attributes})


