"""Quiz-related constants shared by the scheduler, scoring and event layers."""

STATE_DEBOUNCE_MS: int = 300
AUTH_REDIRECT_DEBOUNCE_MS: int = 150

BLANKS_SIMILARITY_THRESHOLD: float = 80.0
OPENENDED_SIMILARITY_THRESHOLD: float = 70.0

EVENT_SYNC_DEBOUNCE_MS: int = 1000
EVENT_HISTORY_LIMIT: int = 1000
VIDEO_DEDUPE_WINDOW_MS: int = 3000
VIDEO_DEDUPE_MIN_DELTA: float = 0.02
