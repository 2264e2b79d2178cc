"""The shared ingestion and verification pipeline.

Both entrypoints, the synchronous ingestion service and the queue
coordinator, run every post through :meth:`DisasterPipeline.process`:

1. deduplication gate on (author, exact text)
2. three-tier text classification
3. severity scoring
4. corroboration against the independent hazard signal (disasters only)
5. write-once persistence with a time-to-live
6. an alert for verified, high-severity events

Persistence failures propagate so the caller can retry; alert failures are
logged and never undo the stored event.
"""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from typing import Optional

from .alerts import AlertDispatcher
from .classification import DisasterClassifier, detect_language
from .config import CONFIG, Config
from .corroboration import HazardSignalClient, verify
from .dedup import DedupIndex
from .errors import DuplicateEventError
from .geocoding import Geocoder
from .models import (
    ClassificationResult,
    ClassifierTier,
    Coordinates,
    DisasterEvent,
    PipelineOutcome,
    PipelineStatus,
    RawPost,
    isoformat,
    utc_now,
)
from .scoring import score
from .storage import EventStore


logger = logging.getLogger(__name__)


def resolve_event_type(classification: ClassificationResult) -> str:
    if not classification.is_disaster:
        return "none"
    if classification.disaster_type and classification.disaster_type != "unknown":
        return classification.disaster_type
    return classification.first_entity("EVENT") or "disaster"


def resolve_location(post: RawPost, classification: ClassificationResult) -> Optional[str]:
    if post.location:
        return post.location
    if classification.location:
        return classification.location
    # Capitalised-token guesses from the heuristic tiers are too noisy to use
    if classification.tier is ClassifierTier.MODEL:
        return classification.first_entity("LOCATION")
    return None


class DisasterPipeline:
    def __init__(
        self,
        store: EventStore,
        classifier: DisasterClassifier | None = None,
        hazard_client: HazardSignalClient | None = None,
        dispatcher: AlertDispatcher | None = None,
        geocoder: Geocoder | None = None,
        config: Config | None = None,
    ):
        self.config = config or CONFIG
        self.store = store
        self.dedup = DedupIndex(store, self.config)
        self.classifier = classifier or DisasterClassifier(config=self.config)
        self.hazard_client = hazard_client or HazardSignalClient(self.config)
        self.dispatcher = dispatcher or AlertDispatcher(config=self.config)
        if geocoder is None and self.config.geocoding_enabled:
            geocoder = Geocoder(self.config)
        self.geocoder = geocoder

    def _coordinates_for(self, post: RawPost, location: Optional[str]) -> Optional[Coordinates]:
        if post.coordinates is not None:
            return post.coordinates
        if self.geocoder is not None and location:
            return self.geocoder.lookup(location)
        return None

    def process(self, post: RawPost) -> PipelineOutcome:
        """Run one post through the pipeline.

        Raises
        ------
        DedupUnavailableError
            The duplicate check could not be performed at all.
        PersistenceError
            The event could not be stored.
        """
        if self.dedup.is_duplicate(post.author, post.text):
            logger.info("Skipping duplicate post from %s: %r", post.author, post.text[:50])
            return PipelineOutcome(status=PipelineStatus.DUPLICATE)

        classification = self.classifier.classify(post.text)
        disaster_score = score(classification, post)
        location = resolve_location(post, classification)
        logger.info(
            "Post %s (%s) classified via %s tier: isDisaster=%s score=%.2f",
            post.id, detect_language(post.text), classification.tier.value,
            classification.is_disaster, disaster_score,
        )

        hazard = None
        verified = 0
        coordinates = post.coordinates
        if classification.is_disaster:
            coordinates = self._coordinates_for(post, location)
            hazard = self.hazard_client.fetch(coordinates)
            verified = verify(disaster_score, hazard, self.config.verify_threshold)

        now = utc_now()
        event = DisasterEvent(
            id=uuid.uuid4().hex,
            text=post.text,
            author=post.author,
            event_type=resolve_event_type(classification),
            verified=verified,
            disaster_score=disaster_score,
            created_at=post.created_at,
            processed_at=isoformat(now),
            ttl=int((now + dt.timedelta(days=self.config.event_ttl_days)).timestamp()),
            platform=post.platform,
            url=post.url,
            location=location,
            coordinates=coordinates,
            classifier_tier=classification.tier.value,
            hazard_source=hazard.source if hazard else None,
        )

        try:
            self.store.put_event(event)
        except DuplicateEventError:
            # Lost a race with a concurrent delivery of the same post
            logger.info("Concurrent duplicate of post from %s dropped at write time", post.author)
            return PipelineOutcome(status=PipelineStatus.DUPLICATE, classification=classification)

        alerted = False
        if self.dispatcher.should_alert(event):
            alerted = self.dispatcher.dispatch(event)

        status = PipelineStatus.PROCESSED if classification.is_disaster else PipelineStatus.NOT_DISASTER
        return PipelineOutcome(
            status=status,
            event=event,
            classification=classification,
            hazard=hazard,
            alerted=alerted,
        )
