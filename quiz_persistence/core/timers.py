"""One-shot timer backends used for debouncing.

The scheduler and event log only need ``start(delay_ms, callback)`` returning
something with ``cancel()``. ``ThreadingTimerFactory`` is the default; the Qt
backend in ``quiz_persistence.utils.qt_bridge`` runs callbacks on the Qt event loop.
"""

from __future__ import annotations

from threading import Timer
from typing import Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class TimerFactory(Protocol):
    def start(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle: ...


class ThreadingTimerFactory:
    """Runs each callback on a daemon ``threading.Timer`` thread."""

    def start(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        timer = Timer(max(0, delay_ms) / 1000, callback)
        timer.daemon = True
        timer.name = "QuizPersistenceTimer"
        timer.start()
        return timer
