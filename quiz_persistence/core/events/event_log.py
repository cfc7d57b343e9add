"""Append-only progress event log with persistence and batched server sync."""

from __future__ import annotations

import bisect
from dataclasses import dataclass, field
import logging
from threading import RLock
from types import MappingProxyType
from typing import Mapping, Protocol, Sequence
import weakref

from quiz_persistence.constants.storage_constants import progress_events_key
from quiz_persistence.core.clock import Clock, now_ms
from quiz_persistence.core.errors import EventSyncError
from quiz_persistence.core.events.progress_events import ProgressEvent, ProgressEventType
from quiz_persistence.core.events.replay import (
    AnswerProjection,
    ChapterProjection,
    CourseProjection,
    Projections,
    QuizProjection,
    replay,
)
from quiz_persistence.core.record_codec import EVENT_LOG_SCHEMA, decode, encode
from quiz_persistence.core.settings import DEFAULT_SETTINGS, PersistenceSettings
from quiz_persistence.core.storage.adapter import TieredStorage
from quiz_persistence.core.timers import ThreadingTimerFactory, TimerFactory, TimerHandle

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class SyncOutcome:
    """Event ids the server acknowledged and the ones it rejected."""

    synced: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()


class SyncTransport(Protocol):
    def send(self, events: Sequence[ProgressEvent]) -> SyncOutcome: ...


@dataclass(slots=True)
class _TimerSlot:
    handle: TimerHandle | None = None


def _cancel_slot(slot: _TimerSlot) -> None:
    if slot.handle is not None:
        slot.handle.cancel()
        slot.handle = None


@dataclass(slots=True)
class _Projection:
    revision: int = -1
    value: Projections = field(default_factory=Projections.empty)


class ProgressEventLog:
    """In-memory event log for one user.

    Every dispatched event is kept in timestamp order (capped at the configured
    history limit), mirrored to storage, and queued for the next batched sync.
    Derived progress is always replayed from the full log; the result is cached
    until the log changes.
    """

    def __init__(
        self,
        user_id: str,
        storage: TieredStorage | None = None,
        transport: SyncTransport | None = None,
        timer_factory: TimerFactory | None = None,
        clock: Clock = now_ms,
        settings: PersistenceSettings = DEFAULT_SETTINGS,
    ) -> None:
        self.user_id = user_id
        self._storage = storage
        self._transport = transport
        self._timer_factory = timer_factory or ThreadingTimerFactory()
        self._clock = clock
        self._settings = settings
        self._lock = RLock()
        self._events: list[ProgressEvent] = []
        self._pending: list[ProgressEvent] = []
        self._failed: list[ProgressEvent] = []
        self._last_video: dict[str, tuple[float, int]] = {}
        self._revision = 0
        self._projection = _Projection()
        self._timer = _TimerSlot()
        self._disposed = False
        self._online = True
        self._syncing = False
        self._last_error: str | None = None
        self.last_synced_at: int | None = None
        self._finalizer = weakref.finalize(self, _cancel_slot, self._timer)

    @property
    def storage_key(self) -> str:
        return progress_events_key(self.user_id)

    @property
    def events(self) -> tuple[ProgressEvent, ...]:
        with self._lock:
            return tuple(self._events)

    @property
    def pending_events(self) -> tuple[ProgressEvent, ...]:
        with self._lock:
            return tuple(self._pending)

    @property
    def failed_events(self) -> tuple[ProgressEvent, ...]:
        with self._lock:
            return tuple(self._failed)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def failed_count(self) -> int:
        with self._lock:
            return len(self._failed)

    def dispatch(self, event: ProgressEvent) -> bool:
        """Append ``event``; returns False when it was skipped as a near-duplicate."""
        with self._lock:
            if self._disposed:
                logger.debug("Ignoring %s on a disposed event log", event.type)
                return False
            if self._is_duplicate_video_progress(event):
                logger.debug("Skipping duplicate video progress for chapter %s", event.entity_id)
                return False
            bisect.insort(self._events, event, key=lambda item: item.timestamp)
            overflow = len(self._events) - self._settings.event_history_limit
            if overflow > 0:
                del self._events[:overflow]
            self._pending.append(event)
            self._revision += 1
            self._persist()
            self._arm_sync()
        return True

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    @property
    def last_error(self) -> str | None:
        """Message of the most recent failed sync, until cleared or a sync succeeds."""
        return self._last_error

    def clear_error(self) -> None:
        with self._lock:
            self._last_error = None

    def set_online_status(self, online: bool) -> None:
        """Background sync only runs while online; coming back online resumes it."""
        with self._lock:
            self._online = online
            if not online:
                _cancel_slot(self._timer)
            elif self._pending:
                self._arm_sync()

    def sync_now(self) -> SyncOutcome:
        """Send every pending event in one transport call.

        Raises :class:`EventSyncError` when no transport is configured or the
        transport fails; pending events stay queued in that case. A call made
        while another send is in flight returns an empty outcome.
        """
        if self._transport is None:
            raise EventSyncError("No sync transport configured.")
        with self._lock:
            if self._syncing:
                logger.debug("Progress sync already in flight; skipping")
                return SyncOutcome()
            _cancel_slot(self._timer)
            batch = list(self._pending)
            if not batch:
                return SyncOutcome()
            self._syncing = True
            self._last_error = None

        try:
            outcome = self._transport.send(batch)
        except EventSyncError as exc:
            with self._lock:
                self._last_error = str(exc)
            raise
        finally:
            with self._lock:
                self._syncing = False

        synced = set(outcome.synced)
        failed = set(outcome.failed)
        sent = {event.id for event in batch}
        with self._lock:
            remaining: list[ProgressEvent] = []
            for event in self._pending:
                if event.id in synced:
                    continue
                if event.id in failed:
                    self._failed.append(event)
                    continue
                remaining.append(event)
            self._pending = remaining
            self.last_synced_at = self._clock()
            if self._timer.handle is None and any(event.id not in sent for event in remaining):
                self._arm_sync()
        logger.info("Synced %d progress events (%d failed)", len(synced), len(failed))
        return outcome

    def retry_failed_events(self) -> int:
        with self._lock:
            count = len(self._failed)
            self._pending.extend(self._failed)
            self._failed.clear()
            if count:
                self._arm_sync()
        return count

    def clear_old_events(self, cutoff_ms: int) -> int:
        """Drop events at or before ``cutoff_ms``; returns how many were removed."""
        with self._lock:
            kept = [event for event in self._events if event.timestamp > cutoff_ms]
            removed = len(self._events) - len(kept)
            if removed:
                self._events = kept
                self._revision += 1
                self._persist()
        return removed

    def load_from_storage(self) -> int:
        """Replace the in-memory log with the persisted one; returns the event count."""
        if self._storage is None:
            return 0
        result = decode(
            self._storage.get(self.storage_key),
            EVENT_LOG_SCHEMA,
            now=self._clock(),
            version=self._settings.schema_version,
        )
        if result.should_remove:
            self._storage.remove(self.storage_key)
        if not result.ok:
            return 0

        loaded: list[ProgressEvent] = []
        records = result.payload.get("events") if result.payload else None
        for record in records if isinstance(records, list) else []:
            if not isinstance(record, dict):
                continue
            try:
                loaded.append(ProgressEvent.from_record(record))
            except (KeyError, TypeError, ValueError) as exc:
                logger.info("Skipping unreadable stored event: %s", exc)
        loaded.sort(key=lambda item: item.timestamp)

        with self._lock:
            self._events = loaded[-self._settings.event_history_limit :]
            self._revision += 1
            return len(self._events)

    # --- Selectors ---

    def projections(self) -> Projections:
        with self._lock:
            if self._projection.revision != self._revision:
                self._projection = _Projection(self._revision, replay(self._events))
            return self._projection.value

    def course_progress(self) -> Mapping[str, CourseProjection]:
        return self.projections().courses

    def quiz_progress(self) -> Mapping[str, QuizProjection]:
        return self.projections().quizzes

    def chapter_progress(self) -> Mapping[str, ChapterProjection]:
        return self.projections().chapters

    def course_completion_percentage(self, course_id: str) -> float:
        course = self.course_progress().get(course_id)
        return course.progress if course is not None else 0.0

    def quiz_completion_percentage(self, quiz_id: str) -> float:
        quiz = self.quiz_progress().get(quiz_id)
        if quiz is None or quiz.total_questions <= 0:
            return 0.0
        return len(quiz.answers) / quiz.total_questions * 100

    def synced_event_count(self) -> int:
        """Events at or before the last successful sync; 0 before the first one."""
        with self._lock:
            if self.last_synced_at is None:
                return 0
            return sum(1 for event in self._events if event.timestamp <= self.last_synced_at)

    def current_quiz_answers(self, quiz_id: str) -> Mapping[str, AnswerProjection]:
        quiz = self.quiz_progress().get(quiz_id)
        return quiz.answers if quiz is not None else MappingProxyType({})

    # --- Lifecycle ---

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        with self._lock:
            self._disposed = True
            _cancel_slot(self._timer)

    def __enter__(self) -> "ProgressEventLog":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()

    # --- Internals ---

    def _is_duplicate_video_progress(self, event: ProgressEvent) -> bool:
        if event.type is not ProgressEventType.VIDEO_WATCHED:
            return False
        try:
            progress = float(event.metadata.get("progress") or 0)
        except (TypeError, ValueError):
            return False
        now = self._clock()
        last = self._last_video.get(event.entity_id)
        if last is not None:
            last_progress, last_time = last
            if (
                abs(last_progress - progress) < self._settings.video_dedupe_min_delta
                and now - last_time < self._settings.video_dedupe_window_ms
            ):
                return True
        self._last_video[event.entity_id] = (progress, now)
        return False

    def _persist(self) -> None:
        if self._storage is None:
            return
        payload = {"userId": self.user_id, "events": [event.to_record() for event in self._events]}
        try:
            raw = encode(payload, self._settings.schema_version, now=self._clock())
        except (TypeError, ValueError) as exc:
            logger.warning("Could not encode progress events for %s: %s", self.user_id, exc)
            return
        if not self._storage.set(self.storage_key, raw):
            logger.warning("Progress events for %s were not persisted", self.user_id)

    def _arm_sync(self) -> None:
        if self._transport is None or self._disposed or not self._online:
            return
        _cancel_slot(self._timer)
        weak_self = weakref.ref(self)

        def fire() -> None:
            log = weak_self()
            if log is not None:
                log._on_sync_timer()

        self._timer.handle = self._timer_factory.start(self._settings.event_sync_debounce_ms, fire)

    def _on_sync_timer(self) -> None:
        with self._lock:
            if self._disposed:
                return
            self._timer.handle = None
        try:
            self.sync_now()
        except EventSyncError as exc:
            logger.warning("Background progress sync failed: %s", exc)
