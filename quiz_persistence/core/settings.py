"""Tunable parameters for the persistence layers."""

from __future__ import annotations

from dataclasses import dataclass

from quiz_persistence.constants.quiz_constants import (
    AUTH_REDIRECT_DEBOUNCE_MS,
    BLANKS_SIMILARITY_THRESHOLD,
    EVENT_HISTORY_LIMIT,
    EVENT_SYNC_DEBOUNCE_MS,
    OPENENDED_SIMILARITY_THRESHOLD,
    STATE_DEBOUNCE_MS,
    VIDEO_DEDUPE_MIN_DELTA,
    VIDEO_DEDUPE_WINDOW_MS,
)
from quiz_persistence.constants.storage_constants import (
    AUTH_REDIRECT_TTL_MS,
    QUIZ_RESULT_TTL_MS,
    QUIZ_STATE_TTL_MS,
    SCHEMA_VERSION,
)


@dataclass(slots=True, frozen=True)
class PersistenceSettings:
    """Defaults come from the constants modules; override per instance."""

    schema_version: str = SCHEMA_VERSION
    quiz_state_ttl_ms: int = QUIZ_STATE_TTL_MS
    quiz_result_ttl_ms: int = QUIZ_RESULT_TTL_MS
    auth_redirect_ttl_ms: int | None = AUTH_REDIRECT_TTL_MS
    state_debounce_ms: int = STATE_DEBOUNCE_MS
    auth_redirect_debounce_ms: int = AUTH_REDIRECT_DEBOUNCE_MS
    blanks_similarity_threshold: float = BLANKS_SIMILARITY_THRESHOLD
    openended_similarity_threshold: float = OPENENDED_SIMILARITY_THRESHOLD
    event_sync_debounce_ms: int = EVENT_SYNC_DEBOUNCE_MS
    event_history_limit: int = EVENT_HISTORY_LIMIT
    video_dedupe_window_ms: int = VIDEO_DEDUPE_WINDOW_MS
    video_dedupe_min_delta: float = VIDEO_DEDUPE_MIN_DELTA

    def __post_init__(self) -> None:
        if self.state_debounce_ms < 0 or self.auth_redirect_debounce_ms < 0:
            raise ValueError("Debounce delays must not be negative.")
        if self.event_history_limit <= 0:
            raise ValueError("Event history limit must be a positive integer.")


DEFAULT_SETTINGS = PersistenceSettings()
