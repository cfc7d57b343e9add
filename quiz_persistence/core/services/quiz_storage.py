"""Service for loading, restoring and clearing persisted quiz records."""

from __future__ import annotations

from dataclasses import replace
import json
import logging
from typing import Any, Callable

from quiz_persistence.constants.storage_constants import (
    AUTH_REDIRECT_KEY,
    CURRENT_STATE_KEY,
    GUEST_RESULTS_KEY,
    PENDING_RESULT_KEY,
    PRESERVE_GUEST_RESULTS_KEY,
    STORAGE_PREFIX,
    quiz_answers_key,
    quiz_completed_key,
    quiz_results_key,
    quiz_state_key,
)
from quiz_persistence.core.clock import Clock, now_ms
from quiz_persistence.core.models import (
    AuthRedirectState,
    QuizAnswer,
    QuizResult,
    QuizState,
    QuizType,
    answers_from_records,
)
from quiz_persistence.core.quiz_slice import restore_from_auth_redirect
from quiz_persistence.core.record_codec import (
    AUTH_REDIRECT_SCHEMA,
    QUIZ_ANSWERS_SCHEMA,
    QUIZ_RESULT_SCHEMA,
    QUIZ_STATE_SCHEMA,
    DecodeResult,
    DecodeStatus,
    RecordSchema,
    decode,
    encode,
)
from quiz_persistence.core.settings import DEFAULT_SETTINGS, PersistenceSettings
from quiz_persistence.core.state_container import Action
from quiz_persistence.core.storage.adapter import TieredStorage

logger = logging.getLogger(__name__)


class QuizStorageService:
    """Read side of quiz persistence plus the direct (non-debounced) writes.

    Every read self-heals: records that are corrupted, expired or malformed
    are deleted and reported as absent. Nothing here raises on storage
    trouble; callers always get a value or ``None``.
    """

    def __init__(
        self,
        storage: TieredStorage,
        settings: PersistenceSettings = DEFAULT_SETTINGS,
        clock: Clock = now_ms,
    ) -> None:
        self._storage = storage
        self._settings = settings
        self._clock = clock
        self._state_schema = QUIZ_STATE_SCHEMA.with_ttl(settings.quiz_state_ttl_ms)
        self._result_schema = QUIZ_RESULT_SCHEMA.with_ttl(settings.quiz_result_ttl_ms)
        self._auth_schema = AUTH_REDIRECT_SCHEMA.with_ttl(settings.auth_redirect_ttl_ms)
        self._answers_schema = QUIZ_ANSWERS_SCHEMA.with_ttl(settings.quiz_state_ttl_ms)
        self._result_cache: dict[str, QuizResult] = {}

    @property
    def storage(self) -> TieredStorage:
        return self._storage

    # --- Quiz state ---

    def save_quiz_state(self, state: QuizState) -> bool:
        """Write the quiz's own snapshot and mirror it as the most recent quiz."""
        record = state.to_record()
        stored = self._save(quiz_state_key(state.slug), record)
        self._save(CURRENT_STATE_KEY, record)
        return stored

    def load_quiz_state(self, slug: str) -> QuizState | None:
        key = quiz_state_key(slug)
        result = self._load(key, self._state_schema)
        if result.ok:
            return self._build(key, QuizState.from_record, result.payload)
        if result.status is DecodeStatus.NOT_FOUND:
            current = self.get_current_quiz_state()
            if current is not None and current.slug == slug:
                return current
        return None

    def get_current_quiz_state(self) -> QuizState | None:
        result = self._load(CURRENT_STATE_KEY, self._state_schema)
        if not result.ok:
            return None
        return self._build(CURRENT_STATE_KEY, QuizState.from_record, result.payload)

    def remove_quiz_state(self, slug: str) -> None:
        self._storage.remove(quiz_state_key(slug))
        self._clear_current_state_for(slug)

    # --- Answers ---

    def save_quiz_answers(self, quiz_id: str, quiz_type: QuizType | str, answers: list[QuizAnswer]) -> bool:
        record = {
            "quizId": quiz_id,
            "quizType": QuizType.parse(quiz_type).value,
            "answers": [answer.to_record() for answer in answers],
        }
        return self._save(quiz_answers_key(quiz_id), record)

    def get_quiz_answers(self, quiz_id: str, slug: str | None = None) -> list[QuizAnswer] | None:
        """Answers for ``quiz_id``, looked up wherever a non-empty copy survives.

        The dedicated answers record wins, then a stored result for the quiz
        (the cached ones, plus ``slug``'s if given), then the most recent
        in-progress snapshot.
        """
        key = quiz_answers_key(quiz_id)
        result = self._load(key, self._answers_schema)
        if result.ok:
            answers = self._build(key, self._answers_from_payload, result.payload)
            if answers:
                return answers

        candidates = [cached for cached in self._result_cache.values() if cached.quiz_id == quiz_id]
        if slug:
            loaded = self.load_quiz_results(slug)
            if loaded is not None and loaded.quiz_id == quiz_id:
                candidates.insert(0, loaded)
        for candidate in candidates:
            if candidate.answers:
                return list(candidate.answers)

        current = self.get_current_quiz_state()
        if current is not None and current.quiz_id == quiz_id and current.user_answers:
            return list(current.user_answers)
        return None

    # --- Quiz results ---

    def save_quiz_result(self, result: QuizResult) -> bool:
        now = self._clock()
        stored = self._save(quiz_results_key(result.slug), result.to_record(), now=now)
        if stored:
            self._storage.set(quiz_completed_key(result.slug), "true")
            self._result_cache[result.slug] = replace(result, timestamp=now)
        return stored

    def load_quiz_results(self, slug: str) -> QuizResult | None:
        cached = self._result_cache.get(slug)
        if cached is not None:
            if not self._is_stale(cached.timestamp, self._result_schema.ttl_ms):
                return cached
            del self._result_cache[slug]
        key = quiz_results_key(slug)
        result = self._load(key, self._result_schema)
        if not result.ok:
            return None
        loaded = self._build(key, QuizResult.from_record, self._with_timestamp(result))
        if loaded is not None:
            self._result_cache[slug] = loaded
        return loaded

    def is_quiz_completed(self, slug: str) -> bool:
        if self._storage.get(quiz_completed_key(slug)) == "true":
            return True
        result = self.load_quiz_results(slug)
        if result is not None and result.is_completed:
            return True
        state = self.load_quiz_state(slug)
        return state is not None and state.is_completed

    # --- Auth redirect ---

    def save_auth_redirect_state(self, state: AuthRedirectState) -> bool:
        return self._save(AUTH_REDIRECT_KEY, state.to_record())

    def load_auth_redirect_state(self) -> AuthRedirectState | None:
        result = self._load(AUTH_REDIRECT_KEY, self._auth_schema)
        if not result.ok:
            return None
        return self._build(AUTH_REDIRECT_KEY, AuthRedirectState.from_record, self._with_timestamp(result))

    def remove_auth_redirect_state(self) -> None:
        self._storage.remove(AUTH_REDIRECT_KEY)

    def check_stored_auth_redirect_state(self, dispatch: Callable[[Action], Any]) -> AuthRedirectState | None:
        """Consume the pending auth redirect, if any, by dispatching one restore action."""
        state = self.load_auth_redirect_state()
        if state is None:
            return None
        dispatch(restore_from_auth_redirect(state))
        self._storage.remove(AUTH_REDIRECT_KEY)
        logger.info("Restored quiz '%s' after authentication redirect", state.slug)
        return state

    def clear_persisted_quiz_state(self, slug: str | None = None) -> None:
        """Remove the shared auth-redirect key, and with ``slug`` that quiz's state and results."""
        if slug:
            self._storage.remove(quiz_state_key(slug))
            self._storage.remove(quiz_results_key(slug))
            self._result_cache.pop(slug, None)
            self._clear_current_state_for(slug)
        self._storage.remove(AUTH_REDIRECT_KEY)

    # --- Guest results ---

    def save_guest_result(self, result: QuizResult) -> None:
        self.save_quiz_result(result)
        results = [r for r in self._read_guest_records() if r.get("quizId") != result.quiz_id]
        results.append(result.to_record())
        self._storage.set(GUEST_RESULTS_KEY, json.dumps(results))

    def get_guest_results(self) -> list[QuizResult]:
        results: list[QuizResult] = []
        for record in self._read_guest_records():
            try:
                results.append(QuizResult.from_record(record))
            except (TypeError, ValueError) as exc:
                logger.info("Skipping unreadable guest result: %s", exc)
        return results

    def get_guest_result(self, quiz_id: str) -> QuizResult | None:
        return next((r for r in self.get_guest_results() if r.quiz_id == quiz_id), None)

    def clear_guest_result(self, quiz_id: str) -> None:
        records = self._read_guest_records()
        remaining = [r for r in records if r.get("quizId") != quiz_id]
        if len(remaining) != len(records):
            self._storage.set(GUEST_RESULTS_KEY, json.dumps(remaining))

    def clear_all_guest_results(self) -> None:
        self._storage.remove(GUEST_RESULTS_KEY)

    # --- Pending result awaiting post-auth save ---

    def save_pending_result(self, result: QuizResult) -> bool:
        return self._save(PENDING_RESULT_KEY, result.to_record())

    def get_pending_result(self) -> QuizResult | None:
        result = self._load(PENDING_RESULT_KEY, self._result_schema)
        if not result.ok:
            return None
        return self._build(PENDING_RESULT_KEY, QuizResult.from_record, self._with_timestamp(result))

    def clear_pending_result(self) -> None:
        self._storage.remove(PENDING_RESULT_KEY)

    # --- Bulk operations ---

    def clear_all_quiz_data(self) -> int:
        keys = self._storage.keys(STORAGE_PREFIX)
        for key in keys:
            self._storage.remove(key)
        self._result_cache.clear()
        logger.info("Cleared %d quiz storage keys", len(keys))
        return len(keys)

    def handle_auth_state_change(self, is_authenticated: bool) -> None:
        if is_authenticated:
            self._storage.set(PRESERVE_GUEST_RESULTS_KEY, "true")
        else:
            self.clear_all_quiz_data()

    # --- Internals ---

    def _save(self, key: str, payload: dict[str, Any], now: int | None = None) -> bool:
        raw = encode(payload, self._settings.schema_version, now=self._clock() if now is None else now)
        return self._storage.set(key, raw)

    def _is_stale(self, timestamp: int, ttl_ms: int | None) -> bool:
        return ttl_ms is not None and self._clock() - timestamp > ttl_ms

    def _clear_current_state_for(self, slug: str) -> None:
        current = self.get_current_quiz_state()
        if current is not None and current.slug == slug:
            self._storage.remove(CURRENT_STATE_KEY)

    @staticmethod
    def _answers_from_payload(payload: dict[str, Any]) -> list[QuizAnswer]:
        return answers_from_records(QuizType.parse(payload["quizType"]), payload["answers"])

    def _load(self, key: str, schema: RecordSchema) -> DecodeResult:
        result = decode(self._storage.get(key), schema, now=self._clock(), version=self._settings.schema_version)
        if result.should_remove:
            self._storage.remove(key)
        return result

    def _build(self, key: str, factory: Callable[[dict[str, Any]], Any], payload: dict[str, Any] | None) -> Any:
        try:
            return factory(payload or {})
        except (KeyError, TypeError, ValueError) as exc:
            logger.info("Removing unusable record '%s': %s", key, exc)
            self._storage.remove(key)
            return None

    @staticmethod
    def _with_timestamp(result: DecodeResult) -> dict[str, Any]:
        record = result.record
        payload = dict(record.payload)
        payload["timestamp"] = record.timestamp
        payload["version"] = record.version
        return payload

    def _read_guest_records(self) -> list[dict[str, Any]]:
        raw = self._storage.get(GUEST_RESULTS_KEY)
        if raw is None:
            return []
        try:
            data = json.loads(raw)
        except ValueError:
            logger.info("Removing corrupted guest results list")
            self._storage.remove(GUEST_RESULTS_KEY)
            return []
        if not isinstance(data, list):
            self._storage.remove(GUEST_RESULTS_KEY)
            return []
        return [item for item in data if isinstance(item, dict)]
