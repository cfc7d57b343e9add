"""Quiz-taking state slice: action types, action creators and the reducer."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any

from quiz_persistence.core.clock import now_ms
from quiz_persistence.core.models import (
    AuthRedirectState,
    QuizAnswer,
    QuizResult,
    QuizState,
    QuizType,
)
from quiz_persistence.core.scoring import DEFAULT_THRESHOLDS, SimilarityThresholds, calculate_percentage
from quiz_persistence.core.state_container import Action

SET_QUIZ = "quiz/setQuiz"
SET_CURRENT_QUESTION = "quiz/setCurrentQuestion"
SAVE_ANSWER = "quiz/saveAnswer"
TIMER_TICK = "quiz/timerTick"
COMPLETE_QUIZ = "quiz/completeQuiz"
REQUIRE_AUTH = "quiz/requireAuth"
RESTORE_FROM_AUTH_REDIRECT = "quiz/restoreFromAuthRedirect"
RESET_QUIZ = "quiz/resetQuiz"


@dataclass(slots=True, frozen=True)
class QuizSliceState:
    """Immutable view of the quiz currently being taken."""

    quiz_id: str = ""
    quiz_type: QuizType = QuizType.MCQ
    slug: str = ""
    total_questions: int = 0
    current_question: int = 0
    answers: tuple[QuizAnswer, ...] = ()
    start_time: int = 0
    elapsed_seconds: int = 0
    is_completed: bool = False
    completed_at: int | None = None
    final_score: float | None = None
    requires_auth: bool = False
    redirect_path: str | None = None
    temp_results: dict[str, Any] | None = None
    restored_from_auth: bool = False

    def to_quiz_state(self) -> QuizState:
        return QuizState(
            quiz_id=self.quiz_id,
            quiz_type=self.quiz_type,
            slug=self.slug,
            current_question=self.current_question,
            total_questions=self.total_questions,
            start_time=self.start_time,
            is_completed=self.is_completed,
            user_answers=list(self.answers),
            redirect_path=self.redirect_path,
        )

    def to_auth_redirect_state(self, timestamp: int = 0) -> AuthRedirectState:
        return AuthRedirectState(
            slug=self.slug,
            quiz_type=self.quiz_type,
            quiz_id=self.quiz_id,
            current_question=self.current_question,
            answers=list(self.answers),
            temp_results=self.temp_results,
            timestamp=timestamp,
        )

    def to_quiz_result(self, thresholds: SimilarityThresholds = DEFAULT_THRESHOLDS) -> QuizResult:
        score = calculate_percentage(
            self.quiz_type,
            self.answers,
            self.total_questions,
            raw_score=self.final_score,
            thresholds=thresholds,
        )
        total_time = self.elapsed_seconds or sum(answer.time_spent for answer in self.answers)
        return QuizResult(
            quiz_id=self.quiz_id,
            slug=self.slug,
            quiz_type=self.quiz_type,
            score=score,
            answers=list(self.answers),
            total_time=total_time,
            timestamp=self.completed_at or 0,
            is_completed=True,
            redirect_path=self.redirect_path,
        )


def set_quiz(
    quiz_id: str,
    quiz_type: QuizType | str,
    slug: str,
    total_questions: int,
    start_time: int | None = None,
) -> Action:
    return Action(
        SET_QUIZ,
        {
            "quiz_id": quiz_id,
            "quiz_type": QuizType.parse(quiz_type),
            "slug": slug,
            "total_questions": total_questions,
            "start_time": now_ms() if start_time is None else start_time,
        },
    )


def set_current_question(index: int) -> Action:
    return Action(SET_CURRENT_QUESTION, index)


def save_answer(answer: QuizAnswer) -> Action:
    return Action(SAVE_ANSWER, answer)


def timer_tick(seconds: int = 1) -> Action:
    return Action(TIMER_TICK, seconds)


def complete_quiz(score: float | None = None, completed_at: int | None = None) -> Action:
    return Action(COMPLETE_QUIZ, {"score": score, "completed_at": now_ms() if completed_at is None else completed_at})


def require_auth(redirect_path: str | None = None, temp_results: dict[str, Any] | None = None) -> Action:
    return Action(REQUIRE_AUTH, {"redirect_path": redirect_path, "temp_results": temp_results})


def restore_from_auth_redirect(state: AuthRedirectState) -> Action:
    return Action(RESTORE_FROM_AUTH_REDIRECT, state)


def reset_quiz() -> Action:
    return Action(RESET_QUIZ)


def quiz_reducer(state: QuizSliceState | None, action: Action) -> QuizSliceState:
    if state is None:
        state = QuizSliceState()

    if action.type == SET_QUIZ:
        payload = action.payload
        return QuizSliceState(
            quiz_id=payload["quiz_id"],
            quiz_type=payload["quiz_type"],
            slug=payload["slug"],
            total_questions=max(0, int(payload["total_questions"])),
            start_time=payload["start_time"],
        )

    if action.type == SET_CURRENT_QUESTION:
        index = int(action.payload)
        # Out-of-range navigation is ignored.
        if index < 0 or (state.total_questions and index >= state.total_questions):
            return state
        return replace(state, current_question=index)

    if action.type == SAVE_ANSWER:
        answer: QuizAnswer = action.payload
        answers = [a for a in state.answers if a.question_id != answer.question_id]
        answers.append(answer)
        return replace(state, answers=tuple(answers))

    if action.type == TIMER_TICK:
        return replace(state, elapsed_seconds=state.elapsed_seconds + int(action.payload or 0))

    if action.type == COMPLETE_QUIZ:
        return replace(
            state,
            is_completed=True,
            completed_at=action.payload["completed_at"],
            final_score=action.payload["score"],
        )

    if action.type == REQUIRE_AUTH:
        return replace(
            state,
            requires_auth=True,
            redirect_path=action.payload["redirect_path"],
            temp_results=action.payload["temp_results"],
        )

    if action.type == RESTORE_FROM_AUTH_REDIRECT:
        restored: AuthRedirectState = action.payload
        same_quiz = restored.slug == state.slug
        total = state.total_questions if same_quiz else 0
        current = restored.current_question
        if total and current >= total:
            current = total - 1
        return replace(
            state,
            quiz_id=restored.quiz_id or state.quiz_id,
            quiz_type=restored.quiz_type,
            slug=restored.slug,
            total_questions=total,
            current_question=current,
            answers=tuple(restored.answers),
            temp_results=restored.temp_results,
            requires_auth=False,
            restored_from_auth=True,
        )

    if action.type == RESET_QUIZ:
        return QuizSliceState()

    return state
