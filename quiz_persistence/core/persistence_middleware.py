"""Container middleware that autosaves the quiz slice as actions flow through."""

from __future__ import annotations

import logging

from quiz_persistence.constants.storage_constants import AUTH_REDIRECT_KEY, CURRENT_STATE_KEY, quiz_state_key
from quiz_persistence.core.quiz_slice import (
    COMPLETE_QUIZ,
    REQUIRE_AUTH,
    RESET_QUIZ,
    RESTORE_FROM_AUTH_REDIRECT,
    SAVE_ANSWER,
    SET_CURRENT_QUESTION,
    SET_QUIZ,
    QuizSliceState,
)
from quiz_persistence.core.scoring import SimilarityThresholds
from quiz_persistence.core.services.quiz_storage import QuizStorageService
from quiz_persistence.core.services.write_scheduler import DebouncedWriteScheduler
from quiz_persistence.core.settings import DEFAULT_SETTINGS, PersistenceSettings
from quiz_persistence.core.state_container import Action, Dispatch, StateContainer

logger = logging.getLogger(__name__)

_STATE_ACTIONS = frozenset({SET_QUIZ, SET_CURRENT_QUESTION, SAVE_ANSWER, RESTORE_FROM_AUTH_REDIRECT})


class QuizPersistenceMiddleware:
    """Observes dispatched actions and persists the quiz slice; never emits actions itself."""

    def __init__(
        self,
        service: QuizStorageService,
        scheduler: DebouncedWriteScheduler,
        settings: PersistenceSettings = DEFAULT_SETTINGS,
        slice_name: str = "quiz",
    ) -> None:
        self.service = service
        self.scheduler = scheduler
        self.settings = settings
        self.slice_name = slice_name
        self._thresholds = SimilarityThresholds(
            blanks=settings.blanks_similarity_threshold,
            openended=settings.openended_similarity_threshold,
        )

    def __call__(self, container: StateContainer, next_dispatch: Dispatch, action: Action) -> Action:
        previous = self._slice(container)
        result = next_dispatch(action)
        if action.type not in _STATE_ACTIONS and action.type not in (COMPLETE_QUIZ, REQUIRE_AUTH, RESET_QUIZ):
            return result

        current = self._slice(container)
        if action.type in _STATE_ACTIONS:
            self._schedule_state(current)
        elif action.type == COMPLETE_QUIZ:
            self._complete(current)
        elif action.type == REQUIRE_AUTH:
            self._schedule_auth_redirect(current)
        elif action.type == RESET_QUIZ:
            self._reset(previous)
        return result

    def dispose(self, flush: bool = False) -> None:
        self.scheduler.dispose(flush=flush)

    def _slice(self, container: StateContainer) -> QuizSliceState | None:
        return container.get_state().get(self.slice_name)

    def _schedule_state(self, state: QuizSliceState | None) -> None:
        if state is None or not state.slug:
            return
        try:
            record = state.to_quiz_state().to_record()
        except ValueError as exc:
            logger.warning("Skipping autosave for '%s': %s", state.slug, exc)
            return
        self.scheduler.schedule(quiz_state_key(state.slug), record, self.settings.state_debounce_ms)
        self.scheduler.schedule(CURRENT_STATE_KEY, record, self.settings.state_debounce_ms)

    def _cancel_pending(self, slug: str) -> None:
        if slug:
            self.scheduler.cancel(quiz_state_key(slug))
            self.scheduler.cancel(CURRENT_STATE_KEY)
        self.scheduler.cancel(AUTH_REDIRECT_KEY)

    def _complete(self, state: QuizSliceState | None) -> None:
        if state is None or not state.slug:
            return
        self._cancel_pending(state.slug)
        try:
            self.service.save_quiz_result(state.to_quiz_result(self._thresholds))
        except ValueError as exc:
            logger.warning("Could not build result for '%s': %s", state.slug, exc)
        # In-progress state is always cleared, even when the result write failed.
        self.service.remove_quiz_state(state.slug)
        self.service.remove_auth_redirect_state()

    def _schedule_auth_redirect(self, state: QuizSliceState | None) -> None:
        if state is None or not state.slug:
            logger.debug("Auth required without an active quiz; nothing to preserve")
            return
        record = state.to_auth_redirect_state().to_record()
        self.scheduler.schedule(AUTH_REDIRECT_KEY, record, self.settings.auth_redirect_debounce_ms)

    def _reset(self, previous: QuizSliceState | None) -> None:
        slug = previous.slug if previous is not None else ""
        self._cancel_pending(slug)
        self.service.clear_persisted_quiz_state(slug or None)
