"""Exception hierarchy for the persistence layers.

The storage adapter and record codec raise these internally and translate
them into "nothing persisted" outcomes at their public boundary. Only the
event log's explicit ``sync_now`` lets :class:`EventSyncError` reach a caller.
"""

from __future__ import annotations


class PersistenceError(Exception):
    """Base class for every persistence failure."""


class StorageUnavailable(PersistenceError):
    """Raised when a storage tier cannot be read from or written to."""


class QuotaExceeded(StorageUnavailable):
    """Raised when a write would exceed the tier's capacity."""


class CorruptedRecord(PersistenceError):
    """Raised when a stored string is not a valid serialized record."""


class ExpiredRecord(PersistenceError):
    """Raised when a record is older than its time-to-live."""

    def __init__(self, age_ms: int, ttl_ms: int) -> None:
        super().__init__(f"Record age {age_ms}ms exceeds TTL of {ttl_ms}ms.")
        self.age_ms = age_ms
        self.ttl_ms = ttl_ms


class InvalidShape(PersistenceError):
    """Raised when a record lacks fields required to identify it."""

    def __init__(self, missing: list[str]) -> None:
        super().__init__(f"Record is missing required fields: {', '.join(missing)}.")
        self.missing = missing


class ReplayGap(PersistenceError):
    """Raised when an event references a projection that does not exist yet."""


class EventSyncError(PersistenceError):
    """Raised when the progress event batch could not be delivered."""
