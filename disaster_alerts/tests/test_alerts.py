"""Alert payloads, gating and delivery."""

import json
from unittest.mock import MagicMock

import pytest
import requests

from disaster_alerts.alerts import AlertDispatcher, WebhookNotifier, build_alert
from disaster_alerts.errors import DispatchError

from .fakes import RecordingNotifier


def test_build_alert_payload(make_event):
    event = make_event(disaster_score=0.85)
    alert = build_alert(event)

    assert alert["subject"] == "Disaster Alert: TWITTER - downtown"
    assert alert["attributes"] == {"platform": "twitter", "severity": "HIGH", "verified": "true"}
    message = json.loads(alert["message"])
    assert message["eventId"] == event.id
    assert message["disasterScore"] == 0.85
    assert message["verified"] is True
    assert set(message) == {
        "eventId", "platform", "text", "author", "location",
        "disasterScore", "url", "processedAt", "verified",
    }


def test_medium_severity_and_unknown_location(make_event):
    alert = build_alert(make_event(disaster_score=0.75, location=None))
    assert alert["subject"].endswith("Unknown Location")
    assert alert["attributes"]["severity"] == "MEDIUM"


@pytest.mark.parametrize(
    "verified,disaster_score,expected",
    [
        (1, 0.85, True),
        (1, 0.7, False),
        (0, 0.95, False),
        (1, 0.71, True),
    ],
)
def test_should_alert(config, make_event, verified, disaster_score, expected):
    dispatcher = AlertDispatcher(notifier=RecordingNotifier(), config=config)
    assert dispatcher.should_alert(make_event(verified=verified, disaster_score=disaster_score)) is expected


def test_dispatch_publishes(config, make_event):
    notifier = RecordingNotifier()
    assert AlertDispatcher(notifier=notifier, config=config).dispatch(make_event()) is True
    assert len(notifier.published) == 1


def test_dispatch_failure_is_swallowed(config, make_event):
    dispatcher = AlertDispatcher(notifier=RecordingNotifier(fail=True), config=config)
    assert dispatcher.dispatch(make_event()) is False


def test_no_transport_configured(config, make_event):
    assert AlertDispatcher(config=config).notifier is None
    assert AlertDispatcher(config=config).dispatch(make_event()) is False


class TestWebhookNotifier:
    def test_posts_json(self):
        session = MagicMock()
        notifier = WebhookNotifier("https://hooks.example.com/alerts", timeout=3, session=session)
        notifier.publish("subject", "{}", {"severity": "HIGH"})

        args, kwargs = session.post.call_args
        assert args == ("https://hooks.example.com/alerts",)
        assert kwargs["timeout"] == 3
        assert kwargs["json"]["subject"] == "subject"
        assert kwargs["json"]["attributes"] == {"severity": "HIGH"}

    def test_http_error_raises_dispatch_error(self):
        session = MagicMock()
        session.post.return_value.raise_for_status.side_effect = requests.HTTPError("503")
        notifier = WebhookNotifier("https://hooks.example.com/alerts", session=session)
        with pytest.raises(DispatchError):
            notifier.publish("subject", "{}", {})

    def test_dispatcher_builds_webhook_from_config(self, config):
        config.alerts_webhook_url = "https://hooks.example.com/alerts"
        assert isinstance(AlertDispatcher(config=config).notifier, WebhookNotifier)
