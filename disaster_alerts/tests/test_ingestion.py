"""Synchronous ingestion service and HTTP API."""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from disaster_alerts.api import create_app
from disaster_alerts.errors import DedupUnavailableError
from disaster_alerts.ingestion import IngestionService, validate_ingest_request
from disaster_alerts.models import HazardSignal

from .fakes import CROISSANT_TEXT, FLOOD_TEXT, NOT_DISASTER_RESPONSE


FLOOD_REQUEST = {
    "text": FLOOD_TEXT,
    "source": "twitter",
    "author": "user1",
    "timestamp": "2025-01-01T10:00:00.000Z",
    "location": {"lat": 3.139, "lng": 101.6869},
}


# ─── Validation ─────────────────────────────────────────────

def test_valid_request_has_no_errors():
    assert validate_ingest_request(FLOOD_REQUEST) == []
    assert validate_ingest_request({"text": "hello"}) == []


@pytest.mark.parametrize(
    "request_body,error",
    [
        ({}, "Text is required and must be a string"),
        ({"text": 42}, "Text is required and must be a string"),
        ({"text": "   "}, "Text cannot be empty"),
        ({"text": "x" * 1001}, "Text must be less than 1000 characters"),
        ({"text": "ok", "location": {"lat": "3", "lng": 101}}, "Location coordinates must be numbers"),
        ({"text": "ok", "location": {"lat": 91, "lng": 101}}, "Latitude must be between -90 and 90"),
        ({"text": "ok", "location": {"lat": 3, "lng": -181}}, "Longitude must be between -180 and 180"),
        ({"text": "ok", "source": 1}, "Source must be a string"),
        ({"text": "ok", "author": ["a"]}, "Author must be a string"),
        ({"text": "ok", "timestamp": "yesterday"}, "Timestamp must be a valid ISO 8601 date string"),
    ],
)
def test_validation_errors(request_body, error):
    assert error in validate_ingest_request(request_body)


def test_non_object_body():
    assert validate_ingest_request(["text"]) == ["Request body must be a JSON object"]


def test_every_problem_is_reported_once():
    errors = validate_ingest_request(
        {"text": 7, "author": 1, "location": {"lat": 100, "lng": 200}, "timestamp": "soon"}
    )
    assert errors == [
        "Text is required and must be a string",
        "Author must be a string",
        "Timestamp must be a valid ISO 8601 date string",
        "Latitude must be between -90 and 90",
        "Longitude must be between -180 and 180",
    ]


# ─── IngestionService ───────────────────────────────────────

class TestIngestionService:
    def test_flood_is_accepted(self, make_pipeline, notifier):
        response = IngestionService(make_pipeline()).ingest(FLOOD_REQUEST)

        assert response.status_code == 202
        body = response.body
        assert body["verified"] == 1
        assert body["severity"] == pytest.approx(0.7)
        assert body["source"] == "stub"
        assert body["disasterScore"] == pytest.approx(0.85)
        assert body["eventType"] == "flood"
        assert body["location"] == "downtown"
        assert body["message"] == "Event verified and alert sent"
        assert len(notifier.published) == 1

    def test_duplicate(self, make_pipeline):
        service = IngestionService(make_pipeline())
        service.ingest(FLOOD_REQUEST)
        response = service.ingest(FLOOD_REQUEST)
        assert response.status_code == 200
        assert response.body["duplicate"] is True

    def test_not_disaster(self, make_pipeline):
        response = IngestionService(make_pipeline(NOT_DISASTER_RESPONSE)).ingest({"text": CROISSANT_TEXT})
        assert response.status_code == 200
        assert response.body["isDisaster"] is False
        assert response.body["message"] == "Post not disaster-related"
        assert response.body["id"]

    def test_validation_failure_never_reaches_pipeline(self):
        pipeline = MagicMock()
        response = IngestionService(pipeline).ingest({"text": ""})
        assert response.status_code == 400
        assert response.body["message"] == "Validation failed"
        pipeline.process.assert_not_called()

    def test_unexpected_failure(self):
        pipeline = MagicMock()
        pipeline.process.side_effect = RuntimeError("storage exhausted")
        response = IngestionService(pipeline).ingest({"text": "Flood in Klang"})
        assert response.status_code == 500

    def test_dedup_unavailable(self):
        pipeline = MagicMock()
        pipeline.process.side_effect = DedupUnavailableError("down")
        assert IngestionService(pipeline).ingest({"text": "Flood in Klang"}).status_code == 503

    def test_defaults_for_optional_fields(self, make_pipeline, store):
        response = IngestionService(make_pipeline()).ingest({"text": "  Flood in Klang  "})
        event = store.get_event(response.body["id"])
        assert event.author == "unknown"
        assert event.platform == "unknown"
        assert event.text == "Flood in Klang"


# ─── HTTP API ───────────────────────────────────────────────

@pytest.fixture
def client(make_pipeline):
    return TestClient(create_app(make_pipeline()))


class TestApi:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "events": 0}

    def test_ingest_and_list(self, client):
        response = client.post("/ingest", json=FLOOD_REQUEST)
        assert response.status_code == 202
        event_id = response.json()["id"]

        events = client.get("/events").json()
        assert events["count"] == 1
        assert events["events"][0]["id"] == event_id

    def test_list_includes_unverified_on_request(self, client, hazard_client):
        hazard_client.signal = HazardSignal(severity=0.4, source="malaysia-weather")
        client.post("/ingest", json={"text": "Flood in Klang", "author": "user9"})
        assert client.get("/events").json()["count"] == 0
        assert client.get("/events", params={"verified": "false"}).json()["count"] == 1

    def test_validation_error(self, client):
        response = client.post("/ingest", json={"text": ""})
        assert response.status_code == 400
        assert response.json()["errors"] == ["Text is required and must be a string"]

    def test_invalid_json(self, client):
        response = client.post("/ingest", content=b"{nope", headers={"Content-Type": "application/json"})
        assert response.status_code == 400

    def test_limit_is_validated(self, client):
        assert client.get("/events", params={"limit": 0}).status_code == 422

    def test_wrong_typed_location(self, client):
        response = client.post("/ingest", json={"text": "Flood in Klang", "location": {"lat": "3", "lng": 101}})
        assert response.status_code == 400
        assert response.json() == {"message": "Validation failed", "errors": ["Location coordinates must be numbers"]}

    def test_non_object_body(self, client):
        response = client.post("/ingest", json=["Flood in Klang"])
        assert response.status_code == 400
        assert response.json()["errors"] == ["Request body must be a JSON object"]
