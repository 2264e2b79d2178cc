"""Deduplication gate keyed by (author, exact text)."""

from __future__ import annotations

import datetime as dt
import logging

from .config import CONFIG, Config
from .errors import DedupUnavailableError, StorageError
from .models import isoformat, utc_now
from .storage import EventStore


logger = logging.getLogger(__name__)


class DedupIndex:
    """Answer "have we already processed this post?".

    The lookup is read-only; storing the event is what makes later copies
    of the same post recognisable. When the author/text index cannot be
    queried, the check falls back to scanning events processed within the
    configured window. An index error is never taken to mean "new post":
    if the fallback scan fails as well, :class:`DedupUnavailableError` is
    raised so the message is retried.
    """

    def __init__(self, store: EventStore, config: Config | None = None):
        self.store = store
        self.config = config or CONFIG

    def is_duplicate(self, author: str, text: str) -> bool:
        try:
            return self.store.find_by_author_text(author, text) is not None
        except StorageError as exc:
            logger.warning("Author/text index unavailable, using fallback scan: %s", exc)

        since = isoformat(utc_now() - dt.timedelta(hours=self.config.dedup_fallback_window_hours))
        try:
            return self.store.scan_recent(author, text, since) is not None
        except StorageError as exc:
            raise DedupUnavailableError(f"duplicate check failed for author {author!r}: {exc}") from exc
