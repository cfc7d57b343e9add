from __future__ import annotations

from typing import Callable

import pytest

from quiz_persistence.core.storage.adapter import TieredStorage
from quiz_persistence.core.storage.backends import MemoryStorage

START_MS = 1_700_000_000_000


class ManualClock:
    """Clock that only moves when a test says so."""

    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class ManualTimer:
    def __init__(self, due: int, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualTimerFactory:
    """Timer backend driven by :meth:`advance`; due timers fire in due order."""

    def __init__(self, clock: ManualClock) -> None:
        self.clock = clock
        self.timers: list[ManualTimer] = []

    def start(self, delay_ms: int, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self.clock.now + max(0, delay_ms), callback)
        self.timers.append(timer)
        return timer

    def active(self) -> list[ManualTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, ms: int) -> None:
        target = self.clock.now + ms
        while True:
            due = [t for t in self.active() if t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self.clock.now = max(self.clock.now, timer.due)
            timer.fired = True
            timer.callback()
        self.clock.now = target


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def timers(clock):
    return ManualTimerFactory(clock)


@pytest.fixture
def persistent_tier():
    backend = MemoryStorage()
    backend.name = "persistent"
    return backend


@pytest.fixture
def session_tier():
    return MemoryStorage()


@pytest.fixture
def storage(persistent_tier, session_tier):
    """Two in-memory tiers standing in for the persistent and session stores."""
    return TieredStorage([persistent_tier, session_tier])
