"""Exception types raised across the pipeline.

Classifier degradation is deliberately absent: the classifier resolves its
own failures through its fallback tiers and only logs which tier was used.
"""

from __future__ import annotations

from typing import List


class DisasterAlertsError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(DisasterAlertsError):
    """Malformed input. Rejected synchronously, never queued or retried."""

    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors) or "Validation failed")
        self.errors = list(errors)


class StorageError(DisasterAlertsError):
    """The event store could not complete a read or write."""


class PersistenceError(StorageError):
    """Writing an event failed. Fatal to the message being processed."""


class DuplicateEventError(StorageError):
    """A conditional put hit an existing (author, text) key."""


class DedupUnavailableError(DisasterAlertsError):
    """Both the indexed lookup and the fallback scan failed."""


class QueueError(DisasterAlertsError):
    """The message queue substrate failed a receive, send or delete."""


class DispatchError(DisasterAlertsError):
    """Publishing an alert notification failed."""


class CorroborationUnavailable(DisasterAlertsError):
    """The independent hazard signal source could not be reached."""
