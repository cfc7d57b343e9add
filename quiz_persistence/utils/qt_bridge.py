"""Qt integration: event-loop timers and application lifecycle signals."""

from __future__ import annotations

from typing import Callable

from PySide6.QtCore import QCoreApplication, QObject, Qt, QTimer

from quiz_persistence.core.lifecycle import LifecycleSignals


class QtTimerHandle:
    """Cancellable wrapper around a single-shot ``QTimer``."""

    def __init__(self, timer: QTimer) -> None:
        self._timer = timer

    def cancel(self) -> None:
        self._timer.stop()

    def is_active(self) -> bool:
        return self._timer.isActive()


class QtTimerFactory:
    """Runs debounce callbacks on the Qt event loop of the calling thread."""

    def __init__(self, parent: QObject | None = None) -> None:
        self._parent = parent

    def start(self, delay_ms: int, callback: Callable[[], None]) -> QtTimerHandle:
        timer = QTimer(self._parent)
        timer.setSingleShot(True)
        timer.setInterval(max(0, delay_ms))
        timer.timeout.connect(callback)
        timer.start()
        return QtTimerHandle(timer)


def connect_qt_lifecycle(signals: LifecycleSignals, app: QCoreApplication) -> Callable[[], None]:
    """Forward application quit and activation changes; returns a disconnect function."""

    def on_about_to_quit() -> None:
        signals.emit_unload()

    def on_state_changed(state: Qt.ApplicationState) -> None:
        signals.emit_visibility(state != Qt.ApplicationState.ApplicationActive)

    app.aboutToQuit.connect(on_about_to_quit)
    # applicationStateChanged only exists on QGuiApplication.
    state_signal = getattr(app, "applicationStateChanged", None)
    if state_signal is not None:
        state_signal.connect(on_state_changed)

    def disconnect() -> None:
        app.aboutToQuit.disconnect(on_about_to_quit)
        if state_signal is not None:
            state_signal.disconnect(on_state_changed)

    return disconnect
