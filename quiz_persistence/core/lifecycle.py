"""Visibility and unload notifications that trigger forced flushes."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Callable

logger = logging.getLogger(__name__)

VisibilityListener = Callable[[bool], None]
UnloadListener = Callable[[], None]


class LifecycleSignals:
    """Small observer hub; each ``on_*`` call returns its own detach function."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._visibility_listeners: list[VisibilityListener] = []
        self._unload_listeners: list[UnloadListener] = []

    def on_visibility_change(self, listener: VisibilityListener) -> Callable[[], None]:
        with self._lock:
            self._visibility_listeners.append(listener)
        return lambda: self._detach(self._visibility_listeners, listener)

    def on_unload(self, listener: UnloadListener) -> Callable[[], None]:
        with self._lock:
            self._unload_listeners.append(listener)
        return lambda: self._detach(self._unload_listeners, listener)

    def emit_visibility(self, hidden: bool) -> None:
        with self._lock:
            listeners = list(self._visibility_listeners)
        for listener in listeners:
            try:
                listener(hidden)
            except Exception:
                logger.exception("Visibility listener failed")

    def emit_unload(self) -> None:
        with self._lock:
            listeners = list(self._unload_listeners)
        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception("Unload listener failed")

    def listener_count(self) -> int:
        with self._lock:
            return len(self._visibility_listeners) + len(self._unload_listeners)

    def _detach(self, listeners: list, listener: Callable) -> None:
        with self._lock:
            if listener in listeners:
                listeners.remove(listener)
