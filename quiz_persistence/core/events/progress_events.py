"""Immutable progress events and the factory that builds them."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Sequence
from uuid import uuid4

from quiz_persistence.core.clock import now_ms


class ProgressEventType(str, Enum):
    COURSE_STARTED = "COURSE_STARTED"
    COURSE_PROGRESS_UPDATED = "COURSE_PROGRESS_UPDATED"
    QUIZ_STARTED = "QUIZ_STARTED"
    QUESTION_ANSWERED = "QUESTION_ANSWERED"
    QUIZ_COMPLETED = "QUIZ_COMPLETED"
    COURSE_COMPLETED = "COURSE_COMPLETED"
    VIDEO_WATCHED = "VIDEO_WATCHED"
    CHAPTER_COMPLETED = "CHAPTER_COMPLETED"


class EntityType(str, Enum):
    COURSE = "course"
    QUIZ = "quiz"
    QUESTION = "question"
    CHAPTER = "chapter"


def _parse_enum(enum_cls: type[Enum], value: Any) -> Any:
    # Unknown values are kept as plain strings so newer logs still load.
    try:
        return enum_cls(value)
    except ValueError:
        return str(value)


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({str(key): _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [_thaw(item) for item in value]
    return value


@dataclass(slots=True, frozen=True)
class ProgressEvent:
    """One immutable fact in a user's progress history.

    ``type`` is a :class:`ProgressEventType` for known kinds; events of a kind
    this version does not know about keep their raw string so they survive a
    load/save cycle and are skipped during replay. ``metadata`` is frozen all
    the way down: nested mappings become read-only views and lists become
    tuples.
    """

    id: str
    user_id: str
    timestamp: int
    type: ProgressEventType | str
    entity_id: str
    entity_type: EntityType | str
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}), hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", _freeze(self.metadata))

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "timestamp": self.timestamp,
            "type": self.type.value if isinstance(self.type, Enum) else self.type,
            "entityId": self.entity_id,
            "entityType": self.entity_type.value if isinstance(self.entity_type, Enum) else self.entity_type,
            "metadata": _thaw(self.metadata),
        }

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "ProgressEvent":
        metadata = data.get("metadata")
        return cls(
            id=str(data["id"]),
            user_id=str(data.get("userId") or ""),
            timestamp=int(data["timestamp"]),
            type=_parse_enum(ProgressEventType, data["type"]),
            entity_id=str(data["entityId"]),
            entity_type=_parse_enum(EntityType, data.get("entityType") or ""),
            metadata=metadata if isinstance(metadata, dict) else {},
        )


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ProgressEventFactory:
    """Builds each kind of progress event with a fresh id and timestamp."""

    @classmethod
    def create(
        cls,
        event_type: ProgressEventType,
        user_id: str,
        entity_id: str,
        entity_type: EntityType,
        metadata: Mapping[str, Any],
        timestamp: int | None = None,
    ) -> ProgressEvent:
        return ProgressEvent(
            id=uuid4().hex,
            user_id=user_id,
            timestamp=now_ms() if timestamp is None else timestamp,
            type=event_type,
            entity_id=str(entity_id),
            entity_type=entity_type,
            metadata=dict(metadata),
        )

    @classmethod
    def course_started(
        cls, user_id: str, course_id: str, course_slug: str, course_title: str, timestamp: int | None = None
    ) -> ProgressEvent:
        return cls.create(
            ProgressEventType.COURSE_STARTED,
            user_id,
            course_id,
            EntityType.COURSE,
            {"courseSlug": course_slug, "courseTitle": course_title},
            timestamp,
        )

    @classmethod
    def course_progress_updated(
        cls,
        user_id: str,
        course_id: str,
        progress: float,
        completed_chapters: Sequence[int],
        current_chapter_id: int | None = None,
        time_spent: int = 0,
        timestamp: int | None = None,
    ) -> ProgressEvent:
        return cls.create(
            ProgressEventType.COURSE_PROGRESS_UPDATED,
            user_id,
            course_id,
            EntityType.COURSE,
            {
                "progress": progress,
                "completedChapters": list(completed_chapters),
                "currentChapterId": current_chapter_id,
                "timeSpent": time_spent,
            },
            timestamp,
        )

    @classmethod
    def quiz_started(
        cls,
        user_id: str,
        quiz_id: str,
        quiz_type: str,
        quiz_slug: str,
        total_questions: int,
        timestamp: int | None = None,
    ) -> ProgressEvent:
        return cls.create(
            ProgressEventType.QUIZ_STARTED,
            user_id,
            quiz_id,
            EntityType.QUIZ,
            {"quizType": quiz_type, "quizSlug": quiz_slug, "totalQuestions": total_questions},
            timestamp,
        )

    @classmethod
    def question_answered(
        cls,
        user_id: str,
        question_id: str,
        quiz_id: str,
        question_index: int,
        selected_option_id: str | None,
        user_answer: str,
        is_correct: bool,
        time_spent: int,
        timestamp: int | None = None,
    ) -> ProgressEvent:
        return cls.create(
            ProgressEventType.QUESTION_ANSWERED,
            user_id,
            question_id,
            EntityType.QUESTION,
            {
                "quizId": quiz_id,
                "questionIndex": question_index,
                "selectedOptionId": selected_option_id,
                "userAnswer": user_answer,
                "isCorrect": is_correct,
                "timeSpent": time_spent,
            },
            timestamp,
        )

    @classmethod
    def quiz_completed(
        cls,
        user_id: str,
        quiz_id: str,
        score: float,
        max_score: float,
        percentage: float,
        time_spent: int,
        answers: Sequence[Mapping[str, Any]] = (),
        timestamp: int | None = None,
    ) -> ProgressEvent:
        return cls.create(
            ProgressEventType.QUIZ_COMPLETED,
            user_id,
            quiz_id,
            EntityType.QUIZ,
            {
                "score": score,
                "maxScore": max_score,
                "percentage": percentage,
                "timeSpent": time_spent,
                "answers": [dict(answer) for answer in answers],
            },
            timestamp,
        )

    @classmethod
    def course_completed(
        cls,
        user_id: str,
        course_id: str,
        total_time_spent: int,
        final_score: float | None = None,
        timestamp: int | None = None,
    ) -> ProgressEvent:
        return cls.create(
            ProgressEventType.COURSE_COMPLETED,
            user_id,
            course_id,
            EntityType.COURSE,
            {"totalTimeSpent": total_time_spent, "completionDate": _iso_now(), "finalScore": final_score},
            timestamp,
        )

    @classmethod
    def video_watched(
        cls,
        user_id: str,
        chapter_id: str,
        course_id: str,
        progress: float,
        played_seconds: float,
        duration: float,
        timestamp: int | None = None,
    ) -> ProgressEvent:
        return cls.create(
            ProgressEventType.VIDEO_WATCHED,
            user_id,
            chapter_id,
            EntityType.CHAPTER,
            {"courseId": course_id, "progress": progress, "playedSeconds": played_seconds, "duration": duration},
            timestamp,
        )

    @classmethod
    def chapter_completed(
        cls, user_id: str, chapter_id: str, course_id: str, time_spent: int, timestamp: int | None = None
    ) -> ProgressEvent:
        return cls.create(
            ProgressEventType.CHAPTER_COMPLETED,
            user_id,
            chapter_id,
            EntityType.CHAPTER,
            {"courseId": course_id, "timeSpent": time_spent, "completedAt": _iso_now()},
            timestamp,
        )
