"""Storage keys and record lifetimes shared by the persistence layers."""

STORAGE_PREFIX: str = "quiz_"
SCHEMA_VERSION: str = "1.0.0"

QUIZ_STATE_KEY_TEMPLATE: str = "quiz_state_{slug}"
QUIZ_RESULTS_KEY_TEMPLATE: str = "quiz_results_{slug}"
QUIZ_COMPLETED_KEY_TEMPLATE: str = "quiz_{slug}_completed"
QUIZ_ANSWERS_KEY_TEMPLATE: str = "quiz_answers_{quiz_id}"
CURRENT_STATE_KEY: str = "quiz_current_state"
AUTH_REDIRECT_KEY: str = "quiz_auth_redirect"
GUEST_RESULTS_KEY: str = "quiz_guest_results"
PENDING_RESULT_KEY: str = "quiz_pending_result"
PRESERVE_GUEST_RESULTS_KEY: str = "quiz_preserve_guest_results"
PROGRESS_EVENTS_KEY_TEMPLATE: str = "progress_events_{user_id}"

HOUR_MS: int = 60 * 60 * 1000
QUIZ_STATE_TTL_MS: int = 24 * HOUR_MS
QUIZ_RESULT_TTL_MS: int = 24 * HOUR_MS
AUTH_REDIRECT_TTL_MS: int = 30 * 60 * 1000

DEFAULT_SQLITE_PATH: str = "quiz_storage.db"


def quiz_state_key(slug: str) -> str:
    return QUIZ_STATE_KEY_TEMPLATE.format(slug=slug)


def quiz_results_key(slug: str) -> str:
    return QUIZ_RESULTS_KEY_TEMPLATE.format(slug=slug)


def quiz_completed_key(slug: str) -> str:
    return QUIZ_COMPLETED_KEY_TEMPLATE.format(slug=slug)


def progress_events_key(user_id: str) -> str:
    return PROGRESS_EVENTS_KEY_TEMPLATE.format(user_id=user_id)


def quiz_answers_key(quiz_id: str) -> str:
    return QUIZ_ANSWERS_KEY_TEMPLATE.format(quiz_id=quiz_id)
