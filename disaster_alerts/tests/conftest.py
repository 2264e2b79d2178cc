"""Shared test fixtures."""

import datetime as dt
import uuid

import pytest
from langchain_core.language_models import FakeListLLM

from disaster_alerts.config import Config
from disaster_alerts.message_queue import SqliteMessageQueue
from disaster_alerts.models import Coordinates, DisasterEvent, RawPost, isoformat, utc_now
from disaster_alerts.alerts import AlertDispatcher
from disaster_alerts.classification import DisasterClassifier
from disaster_alerts.pipeline import DisasterPipeline
from disaster_alerts.storage import EventStore

from .fakes import FLOOD_RESPONSE, FLOOD_TEXT, RecordingNotifier, StubHazardClient


@pytest.fixture
def config(tmp_path) -> Config:
    """Isolated configuration pointing at a temporary database."""
    return Config(
        database_path=str(tmp_path / "alerts.db"),
        alerts_webhook_url=None,
        geocoding_enabled=False,
        max_workers=1,
    )


@pytest.fixture
def store(config):
    event_store = EventStore(config.database_path)
    yield event_store
    event_store.close()


@pytest.fixture
def queue(config):
    message_queue = SqliteMessageQueue(config.database_path)
    yield message_queue
    message_queue.close()


@pytest.fixture
def hazard_client() -> StubHazardClient:
    return StubHazardClient()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def make_classifier(config):
    """Build a classifier whose model answers with ``responses`` in turn."""

    def _make(*responses: str) -> DisasterClassifier:
        return DisasterClassifier(llm=FakeListLLM(responses=list(responses)), config=config)

    return _make


@pytest.fixture
def make_pipeline(config, store, hazard_client, notifier, make_classifier):
    """Build a pipeline wired to the temp store, stub hazard source and notifier."""

    def _make(*responses: str, llm=None, **overrides) -> DisasterPipeline:
        if llm is not None:
            classifier = DisasterClassifier(llm=llm, config=config)
        else:
            classifier = make_classifier(*(responses or (FLOOD_RESPONSE,)))
        kwargs = {
            "classifier": classifier,
            "hazard_client": hazard_client,
            "dispatcher": AlertDispatcher(notifier=notifier, config=config),
            "config": config,
        }
        kwargs.update(overrides)
        return DisasterPipeline(store, **kwargs)

    return _make


@pytest.fixture
def make_post():
    def _make(text: str = FLOOD_TEXT, author: str = "user1", **overrides) -> RawPost:
        fields = {
            "id": uuid.uuid4().hex,
            "platform": "twitter",
            "text": text,
            "author": author,
            "created_at": isoformat(utc_now()),
            "url": "https://twitter.com/user1/status/1",
            "coordinates": Coordinates(lat=3.139, lng=101.6869),
        }
        fields.update(overrides)
        return RawPost(**fields)

    return _make


@pytest.fixture
def make_event():
    def _make(text: str = FLOOD_TEXT, author: str = "user1", **overrides) -> DisasterEvent:
        now = utc_now()
        fields = {
            "id": uuid.uuid4().hex,
            "text": text,
            "author": author,
            "event_type": "flood",
            "verified": 1,
            "disaster_score": 0.85,
            "created_at": isoformat(now),
            "processed_at": isoformat(now),
            "ttl": int((now + dt.timedelta(days=30)).timestamp()),
            "platform": "twitter",
            "location": "downtown",
        }
        fields.update(overrides)
        return DisasterEvent(**fields)

    return _make
