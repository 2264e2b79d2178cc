"""Wire schemas for ingestion requests and queued posts.

Both entrypoints validate their input here before anything reaches the
pipeline. ``error_messages`` turns pydantic errors into the flat list of
messages returned with a 400 response.
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


MAX_TEXT_LENGTH = 1000


def is_iso_timestamp(value: str) -> bool:
    try:
        dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return False
    return True


def _empty_as_none(value: Any) -> Any:
    # {} and "" mean "not given" on the wire
    return value or None


class CoordinatesIn(BaseModel):
    lat: float = Field(strict=True, ge=-90, le=90)
    lng: float = Field(strict=True, ge=-180, le=180)


class EngagementIn(BaseModel):
    likes: int = Field(default=0, ge=0)
    shares: int = Field(default=0, ge=0)
    comments: int = Field(default=0, ge=0)


class IngestRequest(BaseModel):
    """Body of a synchronous ingestion request."""

    model_config = ConfigDict(extra="ignore")

    text: str = Field(strict=True, min_length=1, max_length=MAX_TEXT_LENGTH)
    source: Optional[str] = Field(default=None, strict=True)
    author: Optional[str] = Field(default=None, strict=True)
    timestamp: Optional[str] = Field(default=None, strict=True)
    location: Optional[CoordinatesIn] = None

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Text cannot be empty")
        return value

    @field_validator("timestamp")
    @classmethod
    def _timestamp_is_iso(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not is_iso_timestamp(value):
            raise ValueError("Timestamp must be a valid ISO 8601 date string")
        return value


class PostPayload(BaseModel):
    """A post as carried in a queue message body."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Union[str, int]
    text: str = Field(strict=True)
    platform: Optional[str] = None
    author: Optional[str] = None
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    url: Optional[str] = None
    location: Optional[str] = None
    coordinates: Optional[CoordinatesIn] = None
    hashtags: List[str] = Field(default_factory=list)
    mentions: List[str] = Field(default_factory=list)
    engagement: Optional[EngagementIn] = None
    queued_at: Optional[str] = Field(default=None, alias="queuedAt")

    normalise_empty = field_validator("coordinates", "engagement", "location", mode="before")(_empty_as_none)


def _message_for(error: Dict[str, Any]) -> str:
    # FastAPI prefixes body errors with "body"
    loc = tuple(part for part in error["loc"] if part != "body")
    kind = error["type"]
    if kind == "json_invalid":
        return "Request body must be valid JSON"
    if not loc:
        return "Request body must be a JSON object"

    field = loc[0]
    if field == "text":
        if kind == "string_too_long":
            return f"Text must be less than {MAX_TEXT_LENGTH} characters"
        if kind == "value_error":
            return "Text cannot be empty"
        return "Text is required and must be a string"
    if field == "location":
        if len(loc) > 1 and kind in ("greater_than_equal", "less_than_equal"):
            if loc[1] == "lat":
                return "Latitude must be between -90 and 90"
            return "Longitude must be between -180 and 180"
        return "Location coordinates must be numbers"
    if field in ("source", "author"):
        return f"{str(field).capitalize()} must be a string"
    if field == "timestamp":
        return "Timestamp must be a valid ISO 8601 date string"
    return f"{'.'.join(str(part) for part in loc)}: {error['msg']}"


def error_messages(errors: List[Dict[str, Any]]) -> List[str]:
    """Flatten pydantic error dicts into unique, ordered messages."""
    messages: List[str] = []
    for error in errors:
        message = _message_for(error)
        if message not in messages:
            messages.append(message)
    return messages
