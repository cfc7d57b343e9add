"""HTTP transport that delivers progress event batches to the sync endpoint."""

from __future__ import annotations

import logging
from typing import Sequence

import httpx

from quiz_persistence.constants.network_constants import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    EVENT_SYNC_PATH,
    SYNC_TIMEOUT_SECONDS,
)
from quiz_persistence.core.errors import EventSyncError
from quiz_persistence.core.events.event_log import SyncOutcome
from quiz_persistence.core.events.progress_events import ProgressEvent

logger = logging.getLogger(__name__)


class HttpEventSyncTransport:
    """POSTs ``{"events": [...]}`` and reads back the synced and failed ids.

    Pass ``client`` to reuse a configured ``httpx.Client`` (or a test client);
    otherwise one is created for ``base_url`` and closed by :meth:`close`.
    """

    def __init__(
        self,
        base_url: str = f"http://{DEFAULT_HOST}:{DEFAULT_PORT}",
        client: httpx.Client | None = None,
        path: str = EVENT_SYNC_PATH,
        timeout: float = SYNC_TIMEOUT_SECONDS,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self._path = path

    def send(self, events: Sequence[ProgressEvent]) -> SyncOutcome:
        body = {"events": [event.to_record() for event in events]}
        try:
            response = self._client.post(self._path, json=body)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            raise EventSyncError(f"Sync failed with status {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise EventSyncError(f"Sync request failed: {exc}") from exc
        except ValueError as exc:
            raise EventSyncError("Sync response was not valid JSON") from exc

        if not isinstance(data, dict):
            raise EventSyncError("Sync response was not a JSON object")
        synced = tuple(str(event_id) for event_id in data.get("syncedEvents") or ())
        failed = tuple(str(event_id) for event_id in data.get("failedEvents") or ())
        logger.debug("Sync endpoint accepted %d and rejected %d events", len(synced), len(failed))
        return SyncOutcome(synced=synced, failed=failed)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "HttpEventSyncTransport":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
