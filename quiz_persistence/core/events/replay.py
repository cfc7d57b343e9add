"""Fold a progress event log into course, quiz and chapter projections.

Replay is a pure function: it sorts events by timestamp and applies one
handler per event, each returning a new :class:`Projections` value. Nothing
is mutated in place, so a prefix can be replayed and its result fed back in
as ``initial`` for the remaining events.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
import logging
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping

from quiz_persistence.core.errors import ReplayGap
from quiz_persistence.core.events.progress_events import ProgressEvent, ProgressEventType

logger = logging.getLogger(__name__)


def _with(mapping: Mapping[str, Any], key: str, value: Any) -> Mapping[str, Any]:
    updated = dict(mapping)
    updated[key] = value
    return MappingProxyType(updated)


@dataclass(slots=True, frozen=True)
class CourseProjection:
    course_id: str
    is_started: bool = False
    started_at: int | None = None
    progress: float = 0.0
    completed_chapters: tuple[int, ...] = ()
    current_chapter_id: int | None = None
    time_spent: int = 0
    last_updated: int | None = None
    is_completed: bool = False
    completed_at: int | None = None
    final_score: float | None = None


@dataclass(slots=True, frozen=True)
class AnswerProjection:
    question_id: str
    user_answer: str = ""
    selected_option_id: str | None = None
    is_correct: bool = False
    time_spent: int = 0
    timestamp: int = 0


@dataclass(slots=True, frozen=True)
class QuizProjection:
    quiz_id: str
    is_started: bool = True
    started_at: int | None = None
    total_questions: int = 0
    answers: Mapping[str, AnswerProjection] = field(default_factory=lambda: MappingProxyType({}))
    is_completed: bool = False
    completed_at: int | None = None
    score: float | None = None
    percentage: float | None = None


@dataclass(slots=True, frozen=True)
class ChapterProjection:
    chapter_id: str
    course_id: str = ""
    progress: float = 0.0
    played_seconds: float = 0.0
    duration: float = 0.0
    last_watched: int | None = None
    is_completed: bool = False
    completed_at: int | None = None
    time_spent: int = 0


@dataclass(slots=True, frozen=True)
class Projections:
    courses: Mapping[str, CourseProjection] = field(default_factory=lambda: MappingProxyType({}))
    quizzes: Mapping[str, QuizProjection] = field(default_factory=lambda: MappingProxyType({}))
    chapters: Mapping[str, ChapterProjection] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def empty(cls) -> "Projections":
        return cls()


def _course_started(state: Projections, event: ProgressEvent) -> Projections:
    if event.entity_id in state.courses:
        return state
    course = CourseProjection(course_id=event.entity_id, is_started=True, started_at=event.timestamp)
    return replace(state, courses=_with(state.courses, event.entity_id, course))


def _course_progress_updated(state: Projections, event: ProgressEvent) -> Projections:
    meta = event.metadata
    current = state.courses.get(event.entity_id) or CourseProjection(course_id=event.entity_id)
    chapter_id = meta.get("currentChapterId")
    course = replace(
        current,
        progress=float(meta.get("progress") or 0),
        completed_chapters=tuple(meta.get("completedChapters") or ()),
        current_chapter_id=None if chapter_id is None else int(chapter_id),
        time_spent=int(meta.get("timeSpent") or 0),
        last_updated=event.timestamp,
    )
    return replace(state, courses=_with(state.courses, event.entity_id, course))


def _course_completed(state: Projections, event: ProgressEvent) -> Projections:
    current = state.courses.get(event.entity_id)
    if current is None:
        raise ReplayGap(f"course {event.entity_id} completed before it was started")
    final_score = event.metadata.get("finalScore")
    course = replace(
        current,
        is_completed=True,
        completed_at=event.timestamp,
        time_spent=int(event.metadata.get("totalTimeSpent") or current.time_spent),
        final_score=None if final_score is None else float(final_score),
    )
    return replace(state, courses=_with(state.courses, event.entity_id, course))


def _quiz_started(state: Projections, event: ProgressEvent) -> Projections:
    if event.entity_id in state.quizzes:
        return state
    quiz = QuizProjection(
        quiz_id=event.entity_id,
        started_at=event.timestamp,
        total_questions=int(event.metadata.get("totalQuestions") or 0),
    )
    return replace(state, quizzes=_with(state.quizzes, event.entity_id, quiz))


def _question_answered(state: Projections, event: ProgressEvent) -> Projections:
    meta = event.metadata
    quiz_id = str(meta.get("quizId") or "")
    quiz = state.quizzes.get(quiz_id)
    if quiz is None:
        raise ReplayGap(f"answer {event.entity_id} for unknown quiz {quiz_id!r}")
    answer = AnswerProjection(
        question_id=event.entity_id,
        user_answer=str(meta.get("userAnswer") or ""),
        selected_option_id=meta.get("selectedOptionId"),
        is_correct=bool(meta.get("isCorrect")),
        time_spent=int(meta.get("timeSpent") or 0),
        timestamp=event.timestamp,
    )
    quiz = replace(quiz, answers=_with(quiz.answers, event.entity_id, answer))
    return replace(state, quizzes=_with(state.quizzes, quiz_id, quiz))


def _quiz_completed(state: Projections, event: ProgressEvent) -> Projections:
    quiz = state.quizzes.get(event.entity_id)
    if quiz is None:
        raise ReplayGap(f"quiz {event.entity_id} completed before it was started")
    meta = event.metadata
    quiz = replace(
        quiz,
        is_completed=True,
        completed_at=event.timestamp,
        score=float(meta.get("score") or 0),
        percentage=float(meta.get("percentage") or 0),
    )
    return replace(state, quizzes=_with(state.quizzes, event.entity_id, quiz))


def _video_watched(state: Projections, event: ProgressEvent) -> Projections:
    meta = event.metadata
    current = state.chapters.get(event.entity_id) or ChapterProjection(
        chapter_id=event.entity_id,
        course_id=str(meta.get("courseId") or ""),
        duration=float(meta.get("duration") or 0),
    )
    # Rewinding never lowers recorded progress.
    chapter = replace(
        current,
        progress=max(current.progress, float(meta.get("progress") or 0)),
        played_seconds=max(current.played_seconds, float(meta.get("playedSeconds") or 0)),
        last_watched=event.timestamp,
    )
    return replace(state, chapters=_with(state.chapters, event.entity_id, chapter))


def _chapter_completed(state: Projections, event: ProgressEvent) -> Projections:
    current = state.chapters.get(event.entity_id)
    if current is None:
        raise ReplayGap(f"chapter {event.entity_id} completed without any watch progress")
    chapter = replace(
        current,
        is_completed=True,
        completed_at=event.timestamp,
        time_spent=int(event.metadata.get("timeSpent") or 0),
    )
    return replace(state, chapters=_with(state.chapters, event.entity_id, chapter))


_HANDLERS: dict[ProgressEventType, Callable[[Projections, ProgressEvent], Projections]] = {
    ProgressEventType.COURSE_STARTED: _course_started,
    ProgressEventType.COURSE_PROGRESS_UPDATED: _course_progress_updated,
    ProgressEventType.COURSE_COMPLETED: _course_completed,
    ProgressEventType.QUIZ_STARTED: _quiz_started,
    ProgressEventType.QUESTION_ANSWERED: _question_answered,
    ProgressEventType.QUIZ_COMPLETED: _quiz_completed,
    ProgressEventType.VIDEO_WATCHED: _video_watched,
    ProgressEventType.CHAPTER_COMPLETED: _chapter_completed,
}


def apply_event(state: Projections, event: ProgressEvent) -> Projections:
    """Apply one event; unknown kinds, gaps and malformed metadata leave ``state`` unchanged."""
    handler = _HANDLERS.get(event.type) if isinstance(event.type, ProgressEventType) else None
    if handler is None:
        return state
    try:
        return handler(state, event)
    except ReplayGap as exc:
        logger.debug("Skipping event %s: %s", event.id, exc)
    except (TypeError, ValueError) as exc:
        logger.info("Skipping malformed %s event %s: %s", event.type.value, event.id, exc)
    return state


def sort_events(events: Iterable[ProgressEvent]) -> list[ProgressEvent]:
    return sorted(events, key=lambda event: event.timestamp)


def replay(events: Iterable[ProgressEvent], initial: Projections | None = None) -> Projections:
    state = initial if initial is not None else Projections.empty()
    for event in sort_events(events):
        state = apply_event(state, event)
    return state
