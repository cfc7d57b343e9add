"""Score calculation for completed quizzes.

Text-based quiz types (blanks, openended) are graded by similarity; the
choice-based ones (mcq, code) by explicit correctness flags.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from quiz_persistence.constants.quiz_constants import (
    BLANKS_SIMILARITY_THRESHOLD,
    OPENENDED_SIMILARITY_THRESHOLD,
)
from quiz_persistence.core.models import QuizAnswer, QuizType

_SIMILARITY_GRADED = frozenset({QuizType.BLANKS, QuizType.OPENENDED})


@dataclass(slots=True, frozen=True)
class SimilarityThresholds:
    """Similarity (0-100) above which an answer counts as correct."""

    blanks: float = BLANKS_SIMILARITY_THRESHOLD
    openended: float = OPENENDED_SIMILARITY_THRESHOLD

    def for_type(self, quiz_type: QuizType) -> float | None:
        if quiz_type is QuizType.BLANKS:
            return self.blanks
        if quiz_type is QuizType.OPENENDED:
            return self.openended
        return None


DEFAULT_THRESHOLDS = SimilarityThresholds()


def clamp_percentage(value: float) -> float:
    return min(100.0, max(0.0, float(value)))


def is_answer_correct(
    answer: QuizAnswer,
    quiz_type: QuizType,
    thresholds: SimilarityThresholds = DEFAULT_THRESHOLDS,
) -> bool:
    if answer.is_correct is not None:
        return answer.is_correct
    threshold = thresholds.for_type(quiz_type)
    if threshold is None or answer.similarity is None:
        return False
    return answer.similarity > threshold


def count_correct(
    answers: Sequence[QuizAnswer],
    quiz_type: QuizType,
    thresholds: SimilarityThresholds = DEFAULT_THRESHOLDS,
) -> int:
    return sum(1 for answer in answers if is_answer_correct(answer, quiz_type, thresholds))


def calculate_percentage(
    quiz_type: QuizType,
    answers: Sequence[QuizAnswer],
    total_questions: int,
    raw_score: float | None = None,
    thresholds: SimilarityThresholds = DEFAULT_THRESHOLDS,
) -> float:
    """Return the 0-100 score recorded on a :class:`QuizResult`.

    For similarity-graded quizzes ``raw_score`` is already a percentage and is
    only clamped; without it the mean similarity of the answers is used.
    Every other type scores ``correct / total_questions``.
    """
    if quiz_type in _SIMILARITY_GRADED:
        if raw_score is not None:
            return clamp_percentage(raw_score)
        if not answers:
            return 0.0
        total_similarity = sum(answer.similarity or 0.0 for answer in answers)
        return clamp_percentage(round(total_similarity / len(answers)))

    denominator = total_questions or len(answers)
    if denominator <= 0:
        return 0.0
    correct = count_correct(answers, quiz_type, thresholds)
    return clamp_percentage(round(correct / denominator * 100, 1))


def calculate_similarity(first: str, second: str) -> int:
    """Case-insensitive Levenshtein similarity as a rounded percentage."""
    if not first and not second:
        return 100
    if not first or not second:
        return 0
    a = first.lower().strip()
    b = second.lower().strip()
    if a == b:
        return 100
    if not a or not b:
        return 0

    previous = list(range(len(a) + 1))
    for i, char_b in enumerate(b, start=1):
        current = [i]
        for j, char_a in enumerate(a, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j - 1] + cost, current[j - 1] + 1, previous[j] + 1))
        previous = current

    longest = max(len(a), len(b))
    distance = previous[-1]
    return round((longest - distance) / longest * 100)
