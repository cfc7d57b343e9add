"""FastAPI app that receives progress event batches from the event log."""

from __future__ import annotations

from threading import Lock, Thread
from typing import Any

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field
import uvicorn

from quiz_persistence.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT, EVENT_SYNC_PATH
from quiz_persistence.core.events.progress_events import ProgressEventType

_KNOWN_TYPES = frozenset(member.value for member in ProgressEventType)


class ProgressEventPayload(BaseModel):
    """One event as serialized by ``ProgressEvent.to_record``."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    user_id: str = Field(alias="userId")
    timestamp: int
    type: str
    entity_id: str = Field(alias="entityId")
    entity_type: str = Field(default="", alias="entityType")
    metadata: dict[str, Any] = Field(default_factory=dict)


class SyncRequest(BaseModel):
    events: list[ProgressEventPayload]


class SyncResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    synced_events: list[str] = Field(default_factory=list, alias="syncedEvents")
    failed_events: list[str] = Field(default_factory=list, alias="failedEvents")


class ReceivedEventStore:
    """Thread-safe record of accepted events, keyed by event id."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._events: dict[str, ProgressEventPayload] = {}

    def accept(self, events: list[ProgressEventPayload]) -> SyncResponse:
        synced: list[str] = []
        failed: list[str] = []
        with self._lock:
            for event in events:
                if event.type not in _KNOWN_TYPES:
                    failed.append(event.id)
                    continue
                # Re-sent events are acknowledged again but stored once.
                self._events.setdefault(event.id, event)
                synced.append(event.id)
        return SyncResponse(synced_events=synced, failed_events=failed)

    def events_for(self, user_id: str) -> list[ProgressEventPayload]:
        with self._lock:
            matching = [event for event in self._events.values() if event.user_id == user_id]
        return sorted(matching, key=lambda event: event.timestamp)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


def _get_store_dependency(store: ReceivedEventStore):
    def dependency() -> ReceivedEventStore:
        return store

    return dependency


def create_sync_app(store: ReceivedEventStore | None = None) -> FastAPI:
    """Create the sync app; pass ``store`` to inspect what it received."""
    app = FastAPI(title="Quiz Progress Sync", version="0.1.0")
    store_dep = _get_store_dependency(store or ReceivedEventStore())

    @app.post(EVENT_SYNC_PATH, response_model=SyncResponse)
    def sync_events(payload: SyncRequest, received: ReceivedEventStore = Depends(store_dep)) -> SyncResponse:
        if not payload.events:
            raise HTTPException(status_code=400, detail="No events to sync.")
        return received.accept(payload.events)

    @app.get("/api/progress/events/{user_id}")
    def list_events(user_id: str, received: ReceivedEventStore = Depends(store_dep)) -> dict[str, object]:
        events = received.events_for(user_id)
        return {"userId": user_id, "events": [event.model_dump(by_alias=True) for event in events]}

    return app


def start_sync_server(
    store: ReceivedEventStore | None = None,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> Thread:
    """Start the sync server in a background daemon thread."""
    app = create_sync_app(store)
    config = uvicorn.Config(app=app, host=host, port=port, log_level="info")
    server = uvicorn.Server(config)

    def run_server() -> None:
        server.run()

    thread = Thread(target=run_server, name="QuizSyncServer", daemon=True)
    thread.start()
    return thread
