"""Debounced, per-tab write scheduler for autosaved quiz state."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from threading import Lock
from typing import Any, Callable, Mapping
from uuid import uuid4
import weakref

from quiz_persistence.constants.storage_constants import SCHEMA_VERSION
from quiz_persistence.core.clock import Clock, now_ms
from quiz_persistence.core.lifecycle import LifecycleSignals
from quiz_persistence.core.record_codec import encode
from quiz_persistence.core.storage.adapter import TieredStorage
from quiz_persistence.core.timers import ThreadingTimerFactory, TimerFactory, TimerHandle

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _PendingWrite:
    key: str
    payload: dict[str, Any]
    handle: TimerHandle
    generation: int


def _cancel_all(pending: dict[str, _PendingWrite], lock: Lock) -> None:
    with lock:
        for entry in pending.values():
            entry.handle.cancel()
        pending.clear()


class DebouncedWriteScheduler:
    """Coalesces bursts of writes per storage key; only the latest payload is written.

    Each instance owns its timers under a tab-scoped id, so two schedulers
    writing the same storage key never cancel one another; the storage layer
    simply keeps whichever write lands last. Armed timers are cancelled when
    the scheduler is disposed or garbage-collected.
    """

    def __init__(
        self,
        storage: TieredStorage,
        timer_factory: TimerFactory | None = None,
        clock: Clock = now_ms,
        tab_id: str | None = None,
        version: str = SCHEMA_VERSION,
    ) -> None:
        self._storage = storage
        self._timer_factory = timer_factory or ThreadingTimerFactory()
        self._clock = clock
        self._version = version
        self.tab_id = tab_id or uuid4().hex
        self._lock = Lock()
        self._pending: dict[str, _PendingWrite] = {}
        self._generation = 0
        self._disposed = False
        self._detachers: list[Callable[[], None]] = []
        self._finalizer = weakref.finalize(self, _cancel_all, self._pending, self._lock)

    def timer_key(self, key: str) -> str:
        return f"{self.tab_id}:{key}"

    def schedule(self, key: str, payload: Mapping[str, Any], delay_ms: int) -> None:
        """(Re)arm the timer for ``key``; earlier pending payloads are superseded."""
        timer_key = self.timer_key(key)
        weak_self = weakref.ref(self)
        with self._lock:
            if self._disposed:
                logger.debug("Ignoring write for '%s' on a disposed scheduler", key)
                return
            existing = self._pending.get(timer_key)
            if existing is not None:
                existing.handle.cancel()
            self._generation += 1
            generation = self._generation

            def fire() -> None:
                scheduler = weak_self()
                if scheduler is not None:
                    scheduler._on_timer(timer_key, generation)

            handle = self._timer_factory.start(delay_ms, fire)
            self._pending[timer_key] = _PendingWrite(key, dict(payload), handle, generation)

    def flush(self, key: str | None = None) -> int:
        """Write pending payloads now (all, or just ``key``); returns how many were stored."""
        with self._lock:
            if key is None:
                entries = list(self._pending.values())
                self._pending.clear()
            else:
                entry = self._pending.pop(self.timer_key(key), None)
                entries = [entry] if entry is not None else []
            for entry in entries:
                entry.handle.cancel()
        return sum(1 for entry in entries if self._write(entry.key, entry.payload))

    def cancel(self, key: str) -> bool:
        with self._lock:
            entry = self._pending.pop(self.timer_key(key), None)
        if entry is None:
            return False
        entry.handle.cancel()
        return True

    def is_pending(self, key: str) -> bool:
        with self._lock:
            return self.timer_key(key) in self._pending

    def pending_keys(self) -> list[str]:
        with self._lock:
            return [entry.key for entry in self._pending.values()]

    def attach_lifecycle(self, signals: LifecycleSignals) -> None:
        """Force-flush when the page is hidden or unloaded."""

        def on_visibility(hidden: bool) -> None:
            if hidden:
                self.flush()

        with self._lock:
            if self._disposed:
                return
        self._detachers.append(signals.on_visibility_change(on_visibility))
        self._detachers.append(signals.on_unload(self.flush))

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self, flush: bool = False) -> None:
        """Cancel armed timers and detach listeners; safe to call repeatedly."""
        if flush and not self._disposed:
            self.flush()
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            detachers = list(self._detachers)
            self._detachers.clear()
        _cancel_all(self._pending, self._lock)
        for detach in detachers:
            detach()

    def __enter__(self) -> "DebouncedWriteScheduler":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()

    def _on_timer(self, timer_key: str, generation: int) -> None:
        with self._lock:
            entry = self._pending.get(timer_key)
            if self._disposed or entry is None or entry.generation != generation:
                return
            del self._pending[timer_key]
        self._write(entry.key, entry.payload)

    def _write(self, key: str, payload: dict[str, Any]) -> bool:
        try:
            raw = encode(payload, self._version, now=self._clock())
        except (TypeError, ValueError) as exc:
            logger.warning("Could not encode autosave for '%s': %s", key, exc)
            return False
        if not self._storage.set(key, raw):
            logger.warning("Autosave for '%s' was dropped; no storage tier accepted it", key)
            return False
        logger.debug("Autosaved '%s' (tab %s)", key, self.tab_id)
        return True
