"""SQLite message queue: visibility timeout, receive counts and receipts."""

import json
import time

import pydantic
import pytest

from disaster_alerts.message_queue import MAIN_QUEUE, PRIORITY_QUEUE, SqliteMessageQueue
from disaster_alerts.models import Engagement, QueueEnvelope, RawPost


class FakeClock:
    def __init__(self):
        self.now = time.time()

    def __call__(self):
        return self.now


def test_receive_hides_message_until_timeout(config):
    clock = FakeClock()
    queue = SqliteMessageQueue(config.database_path, clock=clock)
    try:
        queue.send(MAIN_QUEUE, "body")
        first = queue.receive(MAIN_QUEUE, visibility_timeout=30)
        assert [m.receive_count for m in first] == [1]
        assert queue.receive(MAIN_QUEUE, visibility_timeout=30) == []

        clock.now += 31
        second = queue.receive(MAIN_QUEUE, visibility_timeout=30)
        assert [m.receive_count for m in second] == [2]
        assert second[0].receipt_handle != first[0].receipt_handle
    finally:
        queue.close()


def test_delete_requires_latest_receipt(queue):
    queue.send(MAIN_QUEUE, "body")
    stale = queue.receive(MAIN_QUEUE, visibility_timeout=0)[0]
    latest = queue.receive(MAIN_QUEUE, visibility_timeout=0)[0]

    assert queue.delete(MAIN_QUEUE, stale.receipt_handle) is False
    assert queue.count(MAIN_QUEUE) == 1
    assert queue.delete(MAIN_QUEUE, latest.receipt_handle) is True
    assert queue.count(MAIN_QUEUE) == 0


def test_queues_are_independent(queue):
    queue.send(MAIN_QUEUE, "a")
    queue.send(PRIORITY_QUEUE, "b")
    assert [m.body for m in queue.receive(PRIORITY_QUEUE)] == ["b"]
    assert [m.body for m in queue.receive(MAIN_QUEUE)] == ["a"]


def test_batch_size_is_bounded(queue):
    for i in range(15):
        queue.send(MAIN_QUEUE, str(i))
    assert len(queue.receive(MAIN_QUEUE, max_messages=10)) == 10


def test_enqueue_post_wraps_envelope(queue, make_post):
    post = make_post()
    queue.enqueue_post(post, PRIORITY_QUEUE)
    message = queue.peek(PRIORITY_QUEUE)[0]
    envelope = QueueEnvelope.from_json(message.body)
    assert envelope.post == post
    assert envelope.queued_at
    assert message.receive_count == 0


def test_attributes_are_kept(queue):
    queue.send(MAIN_QUEUE, "body", {"originalQueue": "priority"})
    assert queue.receive(MAIN_QUEUE)[0].attributes == {"originalQueue": "priority"}


# ─── Envelope parsing ───────────────────────────────────────

def test_envelope_defaults_for_sparse_body():
    envelope = QueueEnvelope.from_json(json.dumps({"id": 7, "text": "Banjir di Klang", "engagement": {}}))
    post = envelope.post
    assert post.id == "7"
    assert post.platform == "unknown"
    assert post.author == "unknown"
    assert post.engagement is None
    assert post.coordinates is None
    assert envelope.queued_at == ""


@pytest.mark.parametrize(
    "field,value",
    [
        ("engagement", "lots"),
        ("engagement", [1]),
        ("engagement", {"likes": -1}),
        ("coordinates", "KL"),
        ("coordinates", {"lat": 95, "lng": 101}),
        ("hashtags", "flood"),
        ("text", 42),
    ],
)
def test_wrong_typed_fields_are_rejected(field, value):
    body = {"id": "p1", "text": "Flood here", "author": "a", field: value}
    with pytest.raises(pydantic.ValidationError):
        RawPost.from_dict(body)
    with pytest.raises(ValueError):
        QueueEnvelope.from_json(json.dumps(body))


def test_engagement_is_parsed():
    post = RawPost.from_dict({"id": "p1", "text": "Flood", "engagement": {"likes": 3, "shares": "2"}})
    assert post.engagement == Engagement(likes=3, shares=2, comments=0)
