"""Tests for loading, restoring and clearing persisted quiz records."""

import json

import pytest

from quiz_persistence.constants.storage_constants import (
    AUTH_REDIRECT_KEY,
    CURRENT_STATE_KEY,
    GUEST_RESULTS_KEY,
    HOUR_MS,
    PENDING_RESULT_KEY,
    PRESERVE_GUEST_RESULTS_KEY,
    quiz_answers_key,
    quiz_completed_key,
    quiz_results_key,
    quiz_state_key,
)
from quiz_persistence.core.models import AuthRedirectState, McqAnswer, QuizResult, QuizState, QuizType
from quiz_persistence.core.quiz_slice import RESTORE_FROM_AUTH_REDIRECT
from quiz_persistence.core.record_codec import encode
from quiz_persistence.core.services.quiz_storage import QuizStorageService
from quiz_persistence.core.settings import PersistenceSettings
from quiz_persistence.core.storage.adapter import TieredStorage
from quiz_persistence.core.storage.backends import MemoryStorage


@pytest.fixture
def service(storage, clock):
    return QuizStorageService(storage, clock=clock)


def _result(slug="s", quiz_id="q", score=80.0):
    return QuizResult(quiz_id=quiz_id, slug=slug, quiz_type=QuizType.MCQ, score=score)


def _redirect(slug="s"):
    return AuthRedirectState(
        slug=slug,
        quiz_type=QuizType.MCQ,
        quiz_id="q",
        current_question=1,
        answers=[McqAnswer(question_id="1", user_answer="A")],
    )


class Recorder:
    def __init__(self):
        self.actions = []

    def __call__(self, action):
        self.actions.append(action)
        return action


def test_save_and_load_quiz_state(service):
    state = QuizState(quiz_id="q", quiz_type=QuizType.CODE, slug="s", current_question=1, total_questions=3)
    assert service.save_quiz_state(state)
    assert service.load_quiz_state("s") == state


def test_load_missing_state_returns_none(service):
    assert service.load_quiz_state("absent") is None


def test_corrupted_state_is_removed_on_read(service, storage):
    storage.set(quiz_state_key("s"), "not-json{")
    assert service.load_quiz_state("s") is None
    assert storage.get(quiz_state_key("s")) is None


def test_expired_state_is_removed_on_read(service, storage, clock):
    storage.set(quiz_state_key("s"), encode({"slug": "s"}, now=clock.now - 25 * HOUR_MS))
    assert service.load_quiz_state("s") is None
    assert storage.get(quiz_state_key("s")) is None


def test_fresh_state_at_23_hours_loads(service, storage, clock):
    storage.set(quiz_state_key("s"), encode({"slug": "s", "currentQuestion": 1}, now=clock.now - 23 * HOUR_MS))
    assert service.load_quiz_state("s").current_question == 1


def test_empty_state_record_is_kept(service, storage):
    storage.set(quiz_state_key("s"), "{}")
    assert service.load_quiz_state("s") is None
    assert storage.get(quiz_state_key("s")) == "{}"


def test_legacy_state_is_migrated(service, storage):
    storage.set(quiz_state_key("s"), json.dumps({"currentQuestion": 2}))
    state = service.load_quiz_state("s")
    assert state.current_question == 2
    assert state.user_answers == []


def test_legacy_state_keeps_answers_stored_under_answers(service, storage):
    legacy = {
        "quizId": "q",
        "slug": "s",
        "quizType": "mcq",
        "currentQuestion": 1,
        "totalQuestions": 3,
        "answers": [{"answer": "B", "timeSpent": 4, "isCorrect": True}],
    }
    storage.set(quiz_state_key("s"), json.dumps(legacy))
    state = service.load_quiz_state("s")
    assert len(state.user_answers) == 1
    assert state.user_answers[0].user_answer == "B"
    assert state.user_answers[0].is_correct is True


def test_unusable_state_values_are_removed(service, storage, clock):
    storage.set(quiz_state_key("s"), encode({"slug": "s", "quizType": "essay"}, now=clock.now))
    assert service.load_quiz_state("s") is None
    assert storage.get(quiz_state_key("s")) is None


def test_state_ttl_follows_settings(storage, clock):
    service = QuizStorageService(storage, settings=PersistenceSettings(quiz_state_ttl_ms=1000), clock=clock)
    storage.set(quiz_state_key("s"), encode({"slug": "s"}, now=clock.now - 2000))
    assert service.load_quiz_state("s") is None


def test_save_result_marks_completion(service, storage):
    service.save_quiz_result(_result())
    assert storage.get(quiz_completed_key("s")) == "true"
    assert service.is_quiz_completed("s")
    loaded = service.load_quiz_results("s")
    assert loaded.score == 80.0
    assert loaded.timestamp > 0


def test_completion_marker_requires_stored_result(clock):
    tiny = TieredStorage([MemoryStorage(quota_bytes=40)])
    service = QuizStorageService(tiny, clock=clock)
    assert service.save_quiz_result(_result()) is False
    assert tiny.get(quiz_completed_key("s")) is None
    assert not service.is_quiz_completed("s")


def test_saved_result_is_served_from_cache(service, storage):
    service.save_quiz_result(_result())
    storage.remove(quiz_results_key("s"))
    assert service.load_quiz_results("s").score == 80.0

    service.clear_all_quiz_data()
    assert service.load_quiz_results("s") is None


def test_cached_result_honours_ttl(service, clock):
    service.save_quiz_result(_result())
    clock.advance(25 * HOUR_MS)
    assert service.load_quiz_results("s") is None


def test_current_state_tracks_most_recent_quiz(service, storage):
    first = QuizState(quiz_id="a", quiz_type=QuizType.MCQ, slug="first")
    second = QuizState(quiz_id="b", quiz_type=QuizType.CODE, slug="second", total_questions=2)
    service.save_quiz_state(first)
    service.save_quiz_state(second)
    assert service.get_current_quiz_state() == second

    service.remove_quiz_state("first")
    assert service.get_current_quiz_state() == second
    service.remove_quiz_state("second")
    assert service.get_current_quiz_state() is None
    assert storage.get(CURRENT_STATE_KEY) is None


def test_load_state_falls_back_to_current_snapshot(service, storage):
    state = QuizState(quiz_id="q", quiz_type=QuizType.MCQ, slug="s", current_question=1, total_questions=3)
    service.save_quiz_state(state)
    storage.remove(quiz_state_key("s"))
    assert service.load_quiz_state("s") == state
    assert service.load_quiz_state("other") is None


def test_quiz_answers_round_trip(service, storage):
    answers = [McqAnswer(question_id="1", user_answer="A", is_correct=True)]
    assert service.save_quiz_answers("q", "mcq", answers)
    assert storage.get(quiz_answers_key("q")) is not None
    assert service.get_quiz_answers("q") == answers


def test_quiz_answers_fall_back_to_result_then_current_state(storage, clock):
    answers = [McqAnswer(question_id="1", user_answer="A")]
    result = QuizResult(quiz_id="q", slug="s", quiz_type=QuizType.MCQ, score=50.0, answers=answers)

    writer = QuizStorageService(storage, clock=clock)
    writer.save_quiz_result(result)
    reader = QuizStorageService(storage, clock=clock)
    assert reader.get_quiz_answers("q") is None
    assert reader.get_quiz_answers("q", slug="s") == answers

    in_progress = [McqAnswer(question_id="2", user_answer="C")]
    writer.save_quiz_state(QuizState(quiz_id="other", quiz_type=QuizType.MCQ, slug="o", user_answers=in_progress))
    assert reader.get_quiz_answers("other") == in_progress
    assert reader.get_quiz_answers("missing") is None


def test_empty_answers_record_falls_through(service):
    service.save_quiz_answers("q", QuizType.MCQ, [])
    assert service.get_quiz_answers("q") is None


def test_is_quiz_completed_without_marker(service, storage, clock):
    assert not service.is_quiz_completed("s")
    storage.set(quiz_state_key("s"), encode({"slug": "s", "isCompleted": True}, now=clock.now))
    assert service.is_quiz_completed("s")


def test_check_auth_redirect_dispatches_once(service, storage):
    service.save_auth_redirect_state(_redirect())
    dispatch = Recorder()

    restored = service.check_stored_auth_redirect_state(dispatch)
    assert restored.slug == "s"
    assert len(dispatch.actions) == 1
    action = dispatch.actions[0]
    assert action.type == RESTORE_FROM_AUTH_REDIRECT
    assert action.payload.current_question == 1
    assert action.payload.version == "1.0.0"
    assert storage.get(AUTH_REDIRECT_KEY) is None

    assert service.check_stored_auth_redirect_state(dispatch) is None
    assert len(dispatch.actions) == 1


@pytest.mark.parametrize(
    "record",
    [
        {"quizType": "mcq", "currentQuestion": 1},
        {"slug": "s", "currentQuestion": 1},
        {"slug": "", "quizType": "mcq"},
        {},
    ],
)
def test_invalid_auth_redirect_is_removed_without_dispatch(service, storage, clock, record):
    storage.set(AUTH_REDIRECT_KEY, encode(record, now=clock.now))
    dispatch = Recorder()
    assert service.check_stored_auth_redirect_state(dispatch) is None
    assert dispatch.actions == []
    assert storage.get(AUTH_REDIRECT_KEY) is None


def test_corrupted_auth_redirect_is_removed(service, storage):
    storage.set(AUTH_REDIRECT_KEY, "<<garbage>>")
    dispatch = Recorder()
    assert service.check_stored_auth_redirect_state(dispatch) is None
    assert dispatch.actions == []
    assert storage.get(AUTH_REDIRECT_KEY) is None


def test_stale_auth_redirect_expires(service, storage, clock):
    service.save_auth_redirect_state(_redirect())
    clock.advance(31 * 60 * 1000)
    dispatch = Recorder()
    assert service.check_stored_auth_redirect_state(dispatch) is None
    assert storage.get(AUTH_REDIRECT_KEY) is None


def test_clear_without_slug_only_removes_auth_redirect(service, storage):
    service.save_quiz_state(QuizState(quiz_id="q", quiz_type=QuizType.MCQ, slug="s"))
    service.save_quiz_result(_result())
    service.save_auth_redirect_state(_redirect())

    service.clear_persisted_quiz_state()

    assert storage.get(AUTH_REDIRECT_KEY) is None
    assert storage.get(quiz_state_key("s")) is not None
    assert storage.get(quiz_results_key("s")) is not None


def test_clear_with_slug_removes_quiz_keys_and_auth_redirect(service, storage):
    service.save_quiz_state(QuizState(quiz_id="q", quiz_type=QuizType.MCQ, slug="s"))
    service.save_quiz_result(_result())
    service.save_quiz_state(QuizState(quiz_id="o", quiz_type=QuizType.MCQ, slug="other"))
    service.save_auth_redirect_state(_redirect())

    service.clear_persisted_quiz_state("s")

    assert storage.get(quiz_state_key("s")) is None
    assert storage.get(quiz_results_key("s")) is None
    assert storage.get(AUTH_REDIRECT_KEY) is None
    assert storage.get(quiz_state_key("other")) is not None


def test_guest_results_are_replaced_by_quiz_id(service, storage):
    service.save_guest_result(_result(quiz_id="a", score=10))
    service.save_guest_result(_result(slug="t", quiz_id="b", score=20))
    service.save_guest_result(_result(quiz_id="a", score=30))

    results = service.get_guest_results()
    assert sorted((r.quiz_id, r.score) for r in results) == [("a", 30.0), ("b", 20.0)]
    assert service.get_guest_result("b").slug == "t"
    assert service.get_guest_result("missing") is None
    assert isinstance(json.loads(storage.get(GUEST_RESULTS_KEY)), list)


def test_clear_guest_results(service):
    service.save_guest_result(_result(quiz_id="a"))
    service.save_guest_result(_result(quiz_id="b"))
    service.clear_guest_result("a")
    assert [r.quiz_id for r in service.get_guest_results()] == ["b"]
    service.clear_all_guest_results()
    assert service.get_guest_results() == []


def test_corrupted_guest_results_are_discarded(service, storage):
    storage.set(GUEST_RESULTS_KEY, "][")
    assert service.get_guest_results() == []
    assert storage.get(GUEST_RESULTS_KEY) is None


def test_pending_result_round_trip(service):
    assert service.get_pending_result() is None
    service.save_pending_result(_result(score=65))
    assert service.get_pending_result().score == 65.0
    service.clear_pending_result()
    assert service.get_pending_result() is None


def test_pending_result_expires(service, storage, clock):
    service.save_pending_result(_result())
    clock.advance(25 * HOUR_MS)
    assert service.get_pending_result() is None
    assert storage.get(PENDING_RESULT_KEY) is None


def test_sign_out_clears_all_quiz_data(service, storage):
    service.save_quiz_state(QuizState(quiz_id="q", quiz_type=QuizType.MCQ, slug="s"))
    service.save_guest_result(_result())
    storage.set("progress_events_u", "kept")

    service.handle_auth_state_change(False)

    assert storage.keys("quiz_") == []
    assert storage.get("progress_events_u") == "kept"


def test_sign_in_preserves_guest_results(service, storage):
    service.save_guest_result(_result())
    service.handle_auth_state_change(True)
    assert storage.get(PRESERVE_GUEST_RESULTS_KEY) == "true"
    assert len(service.get_guest_results()) == 1


def test_reads_survive_unavailable_storage(service, persistent_tier, session_tier):
    persistent_tier.disabled = True
    session_tier.disabled = True
    assert service.load_quiz_state("s") is None
    assert service.check_stored_auth_redirect_state(Recorder()) is None
    assert service.save_quiz_result(_result()) is False
    assert service.clear_all_quiz_data() == 0
