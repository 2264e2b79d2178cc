"""Data model shared by every pipeline stage.

Wire formats (queue envelopes, alerts, API responses) use camelCase keys;
the Python objects use snake_case attributes. Each type renders itself with
``as_dict``; incoming posts are validated by :mod:`disaster_alerts.schemas`
before they become a :class:`RawPost`.
"""

from __future__ import annotations

import datetime as dt
import enum
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from .schemas import CoordinatesIn, PostPayload


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def isoformat(value: dt.datetime) -> str:
    """Render a timestamp in the fixed UTC form stored alongside events."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc).isoformat(timespec="seconds")


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float

    def as_dict(self) -> dict:
        return {"lat": self.lat, "lng": self.lng}

    @classmethod
    def from_schema(cls, data: Optional[CoordinatesIn]) -> Optional["Coordinates"]:
        if data is None:
            return None
        return cls(lat=data.lat, lng=data.lng)


@dataclass(frozen=True)
class Engagement:
    likes: int = 0
    shares: int = 0
    comments: int = 0

    def as_dict(self) -> dict:
        return {"likes": self.likes, "shares": self.shares, "comments": self.comments}


@dataclass(frozen=True)
class RawPost:
    """A social media post as produced by the scraping adapters."""

    id: str
    platform: str
    text: str
    author: str
    created_at: str
    url: str = ""
    location: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    hashtags: Tuple[str, ...] = ()
    mentions: Tuple[str, ...] = ()
    engagement: Optional[Engagement] = None

    def as_dict(self) -> dict:
        """Return the JSON-serialisable wire form of the post."""
        data: Dict[str, Any] = {
            "id": self.id,
            "platform": self.platform,
            "text": self.text,
            "author": self.author,
            "createdAt": self.created_at,
            "url": self.url,
            "hashtags": list(self.hashtags),
            "mentions": list(self.mentions),
        }
        if self.location is not None:
            data["location"] = self.location
        if self.coordinates is not None:
            data["coordinates"] = self.coordinates.as_dict()
        if self.engagement is not None:
            data["engagement"] = self.engagement.as_dict()
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "RawPost":
        """Build a post from its wire form.

        The payload is validated with :class:`~disaster_alerts.schemas.PostPayload`;
        a missing or malformed field raises ``pydantic.ValidationError``,
        which callers treat as an invalid message.
        """
        return cls.from_payload(PostPayload.model_validate(data))

    @classmethod
    def from_payload(cls, payload: PostPayload) -> "RawPost":
        engagement = payload.engagement
        return cls(
            id=str(payload.id),
            platform=payload.platform or "unknown",
            text=payload.text,
            author=payload.author or "unknown",
            created_at=payload.created_at or isoformat(utc_now()),
            url=payload.url or "",
            location=payload.location,
            coordinates=Coordinates.from_schema(payload.coordinates),
            hashtags=tuple(payload.hashtags),
            mentions=tuple(payload.mentions),
            engagement=Engagement(
                likes=engagement.likes,
                shares=engagement.shares,
                comments=engagement.comments,
            ) if engagement else None,
        )


@dataclass(frozen=True)
class QueueEnvelope:
    """A post wrapped for the queue, stamped with its enqueue time."""

    post: RawPost
    queued_at: str

    def to_json(self) -> str:
        body = self.post.as_dict()
        body["queuedAt"] = self.queued_at
        return json.dumps(body, ensure_ascii=False)

    @classmethod
    def from_json(cls, body: str) -> "QueueEnvelope":
        """Parse a queue body.

        Raises ``ValueError`` (``pydantic.ValidationError`` is one) for
        anything that is not a JSON object describing a valid post.
        """
        payload = PostPayload.model_validate(json.loads(body))
        return cls(post=RawPost.from_payload(payload), queued_at=payload.queued_at or "")


class ClassifierTier(str, enum.Enum):
    """Which classification strategy produced a result."""

    MODEL = "model"
    SAFE_RESPONSE = "safe_response"
    HEURISTIC = "heuristic"


@dataclass(frozen=True)
class Entity:
    text: str
    type: str
    confidence: float


@dataclass(frozen=True)
class Sentiment:
    label: str = "NEUTRAL"
    confidence: float = 0.5


@dataclass(frozen=True)
class KeyPhrase:
    text: str
    confidence: float


@dataclass(frozen=True)
class ClassificationResult:
    """Structured disaster judgment for one post.

    ``tier`` records the provenance of the judgment so that downstream
    scoring can discount results produced by the fallback strategies.
    """

    is_disaster: bool
    disaster_type: Optional[str]
    severity: float
    confidence: float
    tier: ClassifierTier
    entities: Tuple[Entity, ...] = ()
    sentiment: Sentiment = field(default_factory=Sentiment)
    key_phrases: Tuple[KeyPhrase, ...] = ()
    location: Optional[str] = None
    reasoning: str = ""

    def as_dict(self) -> dict:
        return {
            "isDisaster": self.is_disaster,
            "disasterType": self.disaster_type,
            "severity": self.severity,
            "confidence": self.confidence,
            "entities": [
                {"text": e.text, "type": e.type, "confidence": e.confidence}
                for e in self.entities
            ],
            "sentiment": {"label": self.sentiment.label, "confidence": self.sentiment.confidence},
            "keyPhrases": [{"text": p.text, "confidence": p.confidence} for p in self.key_phrases],
            "location": self.location,
            "reasoning": self.reasoning,
            "tier": self.tier.value,
        }

    def first_entity(self, entity_type: str) -> Optional[str]:
        for entity in self.entities:
            if entity.type == entity_type and entity.text:
                return entity.text
        return None


@dataclass(frozen=True)
class HazardSignal:
    """Independent environmental hazard reading used for corroboration."""

    severity: float
    source: str


@dataclass(frozen=True)
class DisasterEvent:
    """The persisted, write-once record for a processed post."""

    id: str
    text: str
    author: str
    event_type: str
    verified: int
    disaster_score: float
    created_at: str
    processed_at: str
    ttl: int
    platform: str = "unknown"
    url: str = ""
    location: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    classifier_tier: str = ClassifierTier.HEURISTIC.value
    hazard_source: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "author": self.author,
            "eventType": self.event_type,
            "verified": self.verified,
            "disasterScore": self.disaster_score,
            "createdAt": self.created_at,
            "processedAt": self.processed_at,
            "ttl": self.ttl,
            "platform": self.platform,
            "url": self.url,
            "location": self.location,
            "coordinates": self.coordinates.as_dict() if self.coordinates else None,
            "classifierTier": self.classifier_tier,
            "hazardSource": self.hazard_source,
        }


class PipelineStatus(str, enum.Enum):
    DUPLICATE = "duplicate"
    NOT_DISASTER = "not_disaster"
    PROCESSED = "processed"


@dataclass(frozen=True)
class PipelineOutcome:
    status: PipelineStatus
    event: Optional[DisasterEvent] = None
    classification: Optional[ClassificationResult] = None
    hazard: Optional[HazardSignal] = None
    alerted: bool = False


@dataclass(frozen=True)
class QueueMessage:
    """A message as handed out by the queue substrate."""

    message_id: str
    queue: str
    body: str
    receipt_handle: str
    receive_count: int
    attributes: Dict[str, str] = field(default_factory=dict)
