from __future__ import annotations

import datetime as dt
import uuid
from typing import Any, List, Optional

import pandas as pd

from .models import Coordinates, Engagement, RawPost, isoformat, utc_now


ENGAGEMENT_COLUMNS = ("likes", "shares", "comments")


def parse_timestamp(value: Any) -> Optional[dt.datetime]:
    """Attempt to parse a timestamp string into a ``datetime`` object.

    Scraped exports carry timestamps in a variety of formats (e.g.
    ``"Aug 22, 2024"`` or ISO-8601). This helper uses ``pd.to_datetime``
    with ``errors='coerce'`` so unparseable values become ``None``.

    Parameters
    ----------
    value: Any
        The raw timestamp value from the dataset.

    Returns
    -------
    Optional[datetime.datetime]
        A UTC ``datetime`` if parsing succeeds, otherwise ``None``.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    ts = pd.to_datetime(value, errors="coerce", utc=True)
    if pd.isna(ts):
        return None
    return ts.to_pydatetime()


def parse_count(value: Any) -> int:
    """Convert an engagement count to a non-negative integer.

    Counts may be strings, numbers or missing; anything unparseable is 0.
    """
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return 0
    try:
        return max(0, int(float(value)))
    except (ValueError, TypeError):
        return 0


def _cell(row: pd.Series, column: str) -> Optional[str]:
    value = row.get(column)
    if value is None or pd.isna(value):
        return None
    text = str(value).strip()
    return text or None


def load_posts(file_path: str) -> List[RawPost]:
    """Load scraped posts from a CSV or TSV file.

    The file must have ``text`` and ``author`` columns. Optional columns are
    ``id``, ``platform``, ``createdAt`` (or ``timestamp``), ``url``,
    ``location``, ``lat``/``lng`` and the engagement counts ``likes``,
    ``shares`` and ``comments``. Rows without text are skipped.

    Parameters
    ----------
    file_path: str
        Path to the dataset file. The delimiter is detected automatically.

    Returns
    -------
    List[RawPost]
        One :class:`RawPost` per usable row.
    """
    try:
        df = pd.read_csv(file_path, sep=None, engine="python")  # Let pandas detect the delimiter
    except Exception as exc:
        raise RuntimeError(f"Failed to read dataset '{file_path}': {exc}") from exc

    df.columns = [str(c).strip() for c in df.columns]
    missing = {"text", "author"} - set(df.columns)
    if missing:
        raise ValueError(f"Dataset is missing expected columns: {missing}")

    has_engagement = any(col in df.columns for col in ENGAGEMENT_COLUMNS)
    has_coordinates = {"lat", "lng"} <= set(df.columns)
    time_column = "createdAt" if "createdAt" in df.columns else "timestamp"

    posts: List[RawPost] = []
    for _, row in df.iterrows():
        text = _cell(row, "text")
        if text is None:
            continue
        created = parse_timestamp(row.get(time_column))
        coordinates = None
        if has_coordinates and pd.notna(row.get("lat")) and pd.notna(row.get("lng")):
            coordinates = Coordinates(lat=float(row["lat"]), lng=float(row["lng"]))
        engagement = None
        if has_engagement:
            engagement = Engagement(*(parse_count(row.get(col)) for col in ENGAGEMENT_COLUMNS))

        posts.append(
            RawPost(
                id=_cell(row, "id") or uuid.uuid4().hex,
                platform=_cell(row, "platform") or "unknown",
                text=text,
                author=_cell(row, "author") or "unknown",
                created_at=isoformat(created or utc_now()),
                url=_cell(row, "url") or "",
                location=_cell(row, "location"),
                coordinates=coordinates,
                engagement=engagement,
            )
        )
    return posts
