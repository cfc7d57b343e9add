"""Domain models for persisted quiz state.

Records are stored as JSON objects with camelCase keys so that existing
browser-side data remains readable; ``to_record``/``from_record`` are the
only places that know about that naming.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Generic, TypeVar

T = TypeVar("T")


class QuizType(str, Enum):
    MCQ = "mcq"
    CODE = "code"
    OPENENDED = "openended"
    BLANKS = "blanks"

    @classmethod
    def parse(cls, value: Any) -> "QuizType":
        if isinstance(value, QuizType):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValueError(f"Unknown quiz type: {value!r}") from exc


@dataclass(slots=True)
class QuizAnswer:
    """One answer; concrete subclasses tag the quiz type it belongs to."""

    question_id: str | int
    user_answer: str | list[str]
    time_spent: int = 0
    is_correct: bool | None = None
    similarity: float | None = None

    quiz_type: ClassVar[QuizType]

    def __post_init__(self) -> None:
        if not isinstance(self.time_spent, int) or self.time_spent < 0:
            raise ValueError("Time spent must be a non-negative integer number of seconds.")
        if self.similarity is not None and not 0 <= self.similarity <= 100:
            raise ValueError("Similarity must be between 0 and 100.")

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "questionId": self.question_id,
            "userAnswer": list(self.user_answer) if isinstance(self.user_answer, list) else self.user_answer,
            "timeSpent": self.time_spent,
            "quizType": self.quiz_type.value,
        }
        if self.is_correct is not None:
            record["isCorrect"] = self.is_correct
        if self.similarity is not None:
            record["similarity"] = self.similarity
        return record


@dataclass(slots=True)
class McqAnswer(QuizAnswer):
    quiz_type: ClassVar[QuizType] = QuizType.MCQ


@dataclass(slots=True)
class CodeAnswer(QuizAnswer):
    quiz_type: ClassVar[QuizType] = QuizType.CODE


@dataclass(slots=True)
class BlanksAnswer(QuizAnswer):
    quiz_type: ClassVar[QuizType] = QuizType.BLANKS


@dataclass(slots=True)
class OpenEndedAnswer(QuizAnswer):
    quiz_type: ClassVar[QuizType] = QuizType.OPENENDED


_ANSWER_TYPES: dict[QuizType, type[QuizAnswer]] = {
    QuizType.MCQ: McqAnswer,
    QuizType.CODE: CodeAnswer,
    QuizType.BLANKS: BlanksAnswer,
    QuizType.OPENENDED: OpenEndedAnswer,
}


def answer_class_for(quiz_type: QuizType) -> type[QuizAnswer]:
    try:
        return _ANSWER_TYPES[quiz_type]
    except KeyError as exc:  # pragma: no cover - every enum member is mapped
        raise ValueError(f"No answer type registered for {quiz_type!r}") from exc


def answer_from_record(quiz_type: QuizType | str, data: dict[str, Any], index: int = 0) -> QuizAnswer:
    """Build the tagged answer for ``quiz_type`` from a stored record.

    Older records carry neither ``questionId`` nor an integer ``timeSpent``;
    the position in the answer list and a truncated, non-negative value are
    used instead.
    """
    answer_cls = answer_class_for(QuizType.parse(data.get("quizType", quiz_type)))
    raw_answer = data.get("userAnswer", data.get("answer", ""))
    if isinstance(raw_answer, (list, tuple)):
        user_answer: str | list[str] = [str(part) for part in raw_answer]
    else:
        user_answer = "" if raw_answer is None else str(raw_answer)

    similarity = data.get("similarity")
    if similarity is not None:
        similarity = min(100.0, max(0.0, float(similarity)))
    is_correct = data.get("isCorrect")

    return answer_cls(
        question_id=data.get("questionId", str(index)),
        user_answer=user_answer,
        time_spent=max(0, int(data.get("timeSpent") or 0)),
        is_correct=None if is_correct is None else bool(is_correct),
        similarity=similarity,
    )


def answers_from_records(quiz_type: QuizType, records: Any) -> list[QuizAnswer]:
    if not isinstance(records, list):
        return []
    return [
        answer_from_record(quiz_type, item, index)
        for index, item in enumerate(records)
        if isinstance(item, dict)
    ]


@dataclass(slots=True)
class QuizState:
    """Ephemeral snapshot of a quiz that is being taken."""

    quiz_id: str
    quiz_type: QuizType
    slug: str
    current_question: int = 0
    total_questions: int = 0
    start_time: int = 0
    is_completed: bool = False
    user_answers: list[QuizAnswer] = field(default_factory=list)
    redirect_path: str | None = None

    def __post_init__(self) -> None:
        if self.current_question < 0:
            raise ValueError("Current question index must not be negative.")
        if self.total_questions > 0 and self.current_question >= self.total_questions:
            raise ValueError(
                f"Current question index {self.current_question} out of range "
                f"for {self.total_questions} questions"
            )

    def to_record(self) -> dict[str, Any]:
        return {
            "quizId": self.quiz_id,
            "quizType": self.quiz_type.value,
            "slug": self.slug,
            "currentQuestion": self.current_question,
            "totalQuestions": self.total_questions,
            "startTime": self.start_time,
            "isCompleted": self.is_completed,
            "userAnswers": [answer.to_record() for answer in self.user_answers],
            "redirectPath": self.redirect_path,
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> "QuizState":
        quiz_type = QuizType.parse(data.get("quizType") or QuizType.MCQ)
        total = max(0, int(data.get("totalQuestions") or 0))
        current = max(0, int(data.get("currentQuestion") or 0))
        if total:
            current = min(current, total - 1)
        answers = data.get("userAnswers")
        if answers is None:
            # Older snapshots stored the answer list under "answers".
            answers = data.get("answers")
        return cls(
            quiz_id=str(data.get("quizId") or ""),
            quiz_type=quiz_type,
            slug=str(data.get("slug") or ""),
            current_question=current,
            total_questions=total,
            start_time=int(data.get("startTime") or 0),
            is_completed=bool(data.get("isCompleted", False)),
            user_answers=answers_from_records(quiz_type, answers),
            redirect_path=data.get("redirectPath"),
        )


@dataclass(slots=True)
class QuizResult:
    """Terminal snapshot written once when a quiz completes."""

    quiz_id: str
    slug: str
    quiz_type: QuizType
    score: float
    answers: list[QuizAnswer] = field(default_factory=list)
    total_time: int = 0
    timestamp: int = 0
    is_completed: bool = True
    redirect_path: str | None = None

    def __post_init__(self) -> None:
        if not 0 <= self.score <= 100:
            raise ValueError("Score must be a percentage between 0 and 100.")

    def to_record(self) -> dict[str, Any]:
        return {
            "quizId": self.quiz_id,
            "slug": self.slug,
            "quizType": self.quiz_type.value,
            "score": self.score,
            "answers": [answer.to_record() for answer in self.answers],
            "totalTime": self.total_time,
            "timestamp": self.timestamp,
            "isCompleted": self.is_completed,
            "redirectPath": self.redirect_path,
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> "QuizResult":
        quiz_type = QuizType.parse(data.get("quizType") or QuizType.MCQ)
        return cls(
            quiz_id=str(data.get("quizId") or ""),
            slug=str(data.get("slug") or ""),
            quiz_type=quiz_type,
            score=min(100.0, max(0.0, float(data.get("score") or 0))),
            answers=answers_from_records(quiz_type, data.get("answers")),
            total_time=max(0, int(data.get("totalTime") or 0)),
            timestamp=int(data.get("timestamp") or 0),
            is_completed=bool(data.get("isCompleted", True)),
            redirect_path=data.get("redirectPath"),
        )


@dataclass(slots=True)
class AuthRedirectState:
    """Everything needed to resume a quiz after an authentication detour."""

    slug: str
    quiz_type: QuizType
    quiz_id: str = ""
    current_question: int = 0
    answers: list[QuizAnswer] = field(default_factory=list)
    temp_results: dict[str, Any] | None = None
    timestamp: int = 0
    version: str = ""

    def __post_init__(self) -> None:
        if not self.slug:
            raise ValueError("Auth redirect state requires a slug.")

    def to_record(self) -> dict[str, Any]:
        return {
            "slug": self.slug,
            "quizType": self.quiz_type.value,
            "quizId": self.quiz_id,
            "currentQuestion": self.current_question,
            "answers": [answer.to_record() for answer in self.answers],
            "tempResults": self.temp_results,
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> "AuthRedirectState":
        quiz_type = QuizType.parse(data["quizType"])
        temp_results = data.get("tempResults")
        return cls(
            slug=str(data["slug"]),
            quiz_type=quiz_type,
            quiz_id=str(data.get("quizId") or ""),
            current_question=max(0, int(data.get("currentQuestion") or 0)),
            answers=answers_from_records(quiz_type, data.get("answers")),
            temp_results=temp_results if isinstance(temp_results, dict) else None,
            timestamp=int(data.get("timestamp") or 0),
            version=str(data.get("version") or ""),
        )


@dataclass(slots=True)
class VersionedRecord(Generic[T]):
    """Envelope written to storage: the payload plus its write time and schema version."""

    payload: T
    timestamp: int
    version: str
