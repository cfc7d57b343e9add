"""Redux-shaped state container: reducers per slice, middleware, subscribers."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from threading import RLock
from typing import Any, Callable, Mapping, Sequence

logger = logging.getLogger(__name__)

INIT_ACTION_TYPE = "@@container/INIT"


@dataclass(slots=True, frozen=True)
class Action:
    type: str
    payload: Any = None


Reducer = Callable[[Any, Action], Any]
Dispatch = Callable[[Action], Action]
Middleware = Callable[["StateContainer", Dispatch, Action], Action]


class StateContainer:
    """Holds one state value per slice and routes actions through middleware."""

    def __init__(self, reducers: Mapping[str, Reducer], middleware: Sequence[Middleware] = ()) -> None:
        if not reducers:
            raise ValueError("At least one reducer is required.")
        self._lock = RLock()
        self._reducers = dict(reducers)
        self._listeners: list[Callable[[], None]] = []
        init = Action(INIT_ACTION_TYPE)
        self._state: dict[str, Any] = {name: reducer(None, init) for name, reducer in self._reducers.items()}
        self._dispatch = self._build_chain(list(middleware))

    def get_state(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._state)

    def dispatch(self, action: Action) -> Action:
        return self._dispatch(action)

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _build_chain(self, middleware: list[Middleware]) -> Dispatch:
        chain: Dispatch = self._reduce
        for item in reversed(middleware):
            chain = self._wrap(item, chain)
        return chain

    def _wrap(self, middleware: Middleware, next_dispatch: Dispatch) -> Dispatch:
        def dispatch(action: Action) -> Action:
            return middleware(self, next_dispatch, action)

        return dispatch

    def _reduce(self, action: Action) -> Action:
        with self._lock:
            self._state = {name: reducer(self._state[name], action) for name, reducer in self._reducers.items()}
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception("State listener failed after %s", action.type)
        return action
