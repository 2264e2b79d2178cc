"""Synchronous single-post ingestion.

Mirrors the queue path for posts submitted directly (e.g. over HTTP):
validate, run the shared pipeline, and translate the outcome into a status
code and JSON body. Validation failures are 400s and are never queued or
retried; duplicates and non-disaster posts are successful 200 responses.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List

import pydantic

from .errors import DedupUnavailableError, ValidationError
from .models import Coordinates, PipelineStatus, RawPost, isoformat, utc_now
from .pipeline import DisasterPipeline
from .schemas import IngestRequest, error_messages


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestResponse:
    status_code: int
    body: Dict[str, Any]


def parse_ingest_request(request: Any) -> IngestRequest:
    """Validate a request body, raising :class:`ValidationError` with every problem found."""
    try:
        return IngestRequest.model_validate(request)
    except pydantic.ValidationError as exc:
        raise ValidationError(error_messages(exc.errors())) from exc


def validate_ingest_request(request: Any) -> List[str]:
    """Return a list of validation errors; empty when the request is valid."""
    try:
        parse_ingest_request(request)
    except ValidationError as exc:
        return exc.errors
    return []


def post_from_request(request: IngestRequest) -> RawPost:
    """Build a :class:`RawPost` from a validated ingestion request."""
    return RawPost(
        id=uuid.uuid4().hex,
        platform=request.source or "unknown",
        text=request.text.strip(),
        author=request.author or "unknown",
        created_at=request.timestamp or isoformat(utc_now()),
        coordinates=Coordinates.from_schema(request.location),
    )


class IngestionService:
    def __init__(self, pipeline: DisasterPipeline):
        self.pipeline = pipeline

    def ingest(self, request: Any) -> IngestResponse:
        try:
            post = post_from_request(parse_ingest_request(request))
            outcome = self.pipeline.process(post)
        except ValidationError as exc:
            return IngestResponse(400, {"message": "Validation failed", "errors": exc.errors})
        except DedupUnavailableError as exc:
            logger.error("Duplicate check unavailable: %s", exc)
            return IngestResponse(503, {"message": "Service temporarily unavailable"})
        except Exception:
            logger.exception("Error processing post")
            return IngestResponse(500, {"message": "Internal server error"})

        if outcome.status is PipelineStatus.DUPLICATE:
            return IngestResponse(200, {"message": "Duplicate post detected and skipped", "duplicate": True})

        event = outcome.event
        if outcome.status is PipelineStatus.NOT_DISASTER:
            return IngestResponse(
                200,
                {
                    "message": "Post not disaster-related",
                    "isDisaster": False,
                    "reasoning": outcome.classification.reasoning,
                    "id": event.id,
                },
            )

        if outcome.alerted:
            message = "Event verified and alert sent"
        elif event.verified:
            message = "Event verified"
        else:
            message = "Event processed and stored"
        return IngestResponse(
            202,
            {
                "id": event.id,
                "verified": event.verified,
                "severity": outcome.hazard.severity if outcome.hazard else None,
                "source": outcome.hazard.source if outcome.hazard else None,
                "disasterScore": event.disaster_score,
                "location": event.location,
                "eventType": event.event_type,
                "message": message,
            },
        )
