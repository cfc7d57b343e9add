"""Tests for the debounced, per-tab write scheduler."""

import gc
import json

from quiz_persistence.core.lifecycle import LifecycleSignals
from quiz_persistence.core.services.write_scheduler import DebouncedWriteScheduler


def _stored(storage, key):
    raw = storage.get(key)
    return json.loads(raw) if raw is not None else None


def test_burst_is_coalesced_into_one_write(storage, timers, clock, persistent_tier):
    writes = []
    original = persistent_tier.set_item
    persistent_tier.set_item = lambda key, value: (writes.append(key), original(key, value))
    scheduler = DebouncedWriteScheduler(storage, timer_factory=timers, clock=clock)

    for index in (1, 2, 3):
        scheduler.schedule("quiz_state_s", {"currentQuestion": index}, 300)
        timers.advance(100)
    assert writes == []

    timers.advance(300)
    assert writes == ["quiz_state_s"]
    assert _stored(storage, "quiz_state_s")["currentQuestion"] == 3


def test_write_carries_timestamp_and_version(storage, timers, clock):
    scheduler = DebouncedWriteScheduler(storage, timer_factory=timers, clock=clock, version="9.9.9")
    scheduler.schedule("k", {"slug": "s"}, 300)
    timers.advance(300)
    data = _stored(storage, "k")
    assert data["version"] == "9.9.9"
    assert data["timestamp"] == clock.now


def test_separate_keys_have_separate_timers(storage, timers, clock):
    scheduler = DebouncedWriteScheduler(storage, timer_factory=timers, clock=clock)
    scheduler.schedule("a", {"v": 1}, 300)
    scheduler.schedule("b", {"v": 2}, 150)
    timers.advance(150)
    assert storage.get("a") is None
    assert _stored(storage, "b")["v"] == 2
    timers.advance(150)
    assert _stored(storage, "a")["v"] == 1


def test_timer_keys_are_tab_scoped(storage, timers, clock):
    first = DebouncedWriteScheduler(storage, timer_factory=timers, clock=clock, tab_id="tab-1")
    second = DebouncedWriteScheduler(storage, timer_factory=timers, clock=clock)
    assert first.timer_key("quiz_state_s") == "tab-1:quiz_state_s"
    assert second.tab_id != first.tab_id


def test_two_tabs_do_not_cancel_each_other(storage, timers, clock):
    first = DebouncedWriteScheduler(storage, timer_factory=timers, clock=clock)
    second = DebouncedWriteScheduler(storage, timer_factory=timers, clock=clock)
    first.schedule("quiz_state_s", {"tab": 1}, 300)
    timers.advance(100)
    second.schedule("quiz_state_s", {"tab": 2}, 300)
    timers.advance(200)
    assert _stored(storage, "quiz_state_s")["tab"] == 1
    timers.advance(100)
    # Last writer wins at the storage layer.
    assert _stored(storage, "quiz_state_s")["tab"] == 2


def test_flush_writes_immediately_and_cancels_timer(storage, timers, clock):
    scheduler = DebouncedWriteScheduler(storage, timer_factory=timers, clock=clock)
    scheduler.schedule("a", {"v": 1}, 300)
    scheduler.schedule("b", {"v": 2}, 300)
    assert scheduler.flush("a") == 1
    assert _stored(storage, "a")["v"] == 1
    assert scheduler.pending_keys() == ["b"]
    assert scheduler.flush() == 1
    assert timers.active() == []


def test_cancel_drops_pending_payload(storage, timers, clock):
    scheduler = DebouncedWriteScheduler(storage, timer_factory=timers, clock=clock)
    scheduler.schedule("a", {"v": 1}, 300)
    assert scheduler.cancel("a") is True
    assert scheduler.cancel("a") is False
    timers.advance(1000)
    assert storage.get("a") is None


def test_failed_write_is_dropped_silently(storage, timers, clock, persistent_tier, session_tier):
    persistent_tier.disabled = True
    session_tier.disabled = True
    scheduler = DebouncedWriteScheduler(storage, timer_factory=timers, clock=clock)
    scheduler.schedule("a", {"v": 1}, 300)
    timers.advance(300)
    assert not scheduler.is_pending("a")
    assert scheduler.flush() == 0


def test_unserializable_payload_is_logged_not_raised(storage, timers, clock):
    scheduler = DebouncedWriteScheduler(storage, timer_factory=timers, clock=clock)
    scheduler.schedule("a", {"v": object()}, 300)
    timers.advance(300)
    assert storage.get("a") is None


def test_visibility_hidden_forces_flush(storage, timers, clock):
    signals = LifecycleSignals()
    scheduler = DebouncedWriteScheduler(storage, timer_factory=timers, clock=clock)
    scheduler.attach_lifecycle(signals)
    scheduler.schedule("a", {"v": 1}, 300)
    signals.emit_visibility(False)
    assert storage.get("a") is None
    signals.emit_visibility(True)
    assert _stored(storage, "a")["v"] == 1


def test_unload_forces_flush(storage, timers, clock):
    signals = LifecycleSignals()
    scheduler = DebouncedWriteScheduler(storage, timer_factory=timers, clock=clock)
    scheduler.attach_lifecycle(signals)
    scheduler.schedule("a", {"v": 1}, 300)
    signals.emit_unload()
    assert _stored(storage, "a")["v"] == 1


def test_dispose_is_idempotent_and_detaches(storage, timers, clock):
    signals = LifecycleSignals()
    scheduler = DebouncedWriteScheduler(storage, timer_factory=timers, clock=clock)
    scheduler.attach_lifecycle(signals)
    scheduler.schedule("a", {"v": 1}, 300)
    scheduler.dispose()
    scheduler.dispose()
    assert scheduler.disposed
    assert signals.listener_count() == 0
    assert timers.active() == []


def test_late_timer_after_dispose_is_a_no_op(storage, timers, clock):
    scheduler = DebouncedWriteScheduler(storage, timer_factory=timers, clock=clock)
    scheduler.schedule("a", {"v": 1}, 300)
    timer = timers.timers[-1]
    scheduler.dispose()
    timer.callback()
    assert storage.get("a") is None


def test_schedule_after_dispose_is_ignored(storage, timers, clock):
    scheduler = DebouncedWriteScheduler(storage, timer_factory=timers, clock=clock)
    scheduler.dispose()
    scheduler.schedule("a", {"v": 1}, 300)
    assert timers.timers == []


def test_dispose_with_flush_writes_pending(storage, timers, clock):
    scheduler = DebouncedWriteScheduler(storage, timer_factory=timers, clock=clock)
    scheduler.schedule("a", {"v": 1}, 300)
    scheduler.dispose(flush=True)
    assert _stored(storage, "a")["v"] == 1


def test_context_manager_disposes(storage, timers, clock):
    with DebouncedWriteScheduler(storage, timer_factory=timers, clock=clock) as scheduler:
        scheduler.schedule("a", {"v": 1}, 300)
    assert scheduler.disposed
    assert timers.active() == []


def test_garbage_collected_scheduler_cancels_timers(storage, timers, clock):
    scheduler = DebouncedWriteScheduler(storage, timer_factory=timers, clock=clock)
    scheduler.schedule("a", {"v": 1}, 300)
    timer = timers.timers[-1]
    del scheduler
    gc.collect()
    assert timer.cancelled
    timer.callback()
    assert storage.get("a") is None
