"""Tests for score and similarity calculation."""

import pytest

from quiz_persistence.core.models import BlanksAnswer, McqAnswer, OpenEndedAnswer, QuizType
from quiz_persistence.core.scoring import (
    SimilarityThresholds,
    calculate_percentage,
    calculate_similarity,
    count_correct,
    is_answer_correct,
)


def test_mcq_percentage_uses_total_questions():
    answers = [
        McqAnswer(question_id="1", user_answer="a", is_correct=True),
        McqAnswer(question_id="2", user_answer="b", is_correct=False),
        McqAnswer(question_id="3", user_answer="c", is_correct=True),
    ]
    assert calculate_percentage(QuizType.MCQ, answers, total_questions=4) == 50.0


def test_percentage_falls_back_to_answer_count():
    answers = [McqAnswer(question_id="1", user_answer="a", is_correct=True)]
    assert calculate_percentage(QuizType.MCQ, answers, total_questions=0) == 100.0


def test_percentage_without_answers_or_questions_is_zero():
    assert calculate_percentage(QuizType.CODE, [], total_questions=0) == 0.0


@pytest.mark.parametrize("raw, expected", [(85, 85.0), (140, 100.0), (-5, 0.0)])
def test_similarity_graded_raw_score_is_clamped(raw, expected):
    assert calculate_percentage(QuizType.BLANKS, [], total_questions=3, raw_score=raw) == expected


def test_openended_without_raw_score_averages_similarity():
    answers = [
        OpenEndedAnswer(question_id="1", user_answer="x", similarity=60),
        OpenEndedAnswer(question_id="2", user_answer="y", similarity=90),
    ]
    assert calculate_percentage(QuizType.OPENENDED, answers, total_questions=2) == 75.0


def test_similarity_threshold_is_strictly_greater():
    at_threshold = BlanksAnswer(question_id="1", user_answer="x", similarity=80)
    above = BlanksAnswer(question_id="2", user_answer="y", similarity=81)
    assert not is_answer_correct(at_threshold, QuizType.BLANKS)
    assert is_answer_correct(above, QuizType.BLANKS)
    assert is_answer_correct(OpenEndedAnswer(question_id="3", user_answer="z", similarity=71), QuizType.OPENENDED)


def test_explicit_correctness_wins_over_similarity():
    answer = BlanksAnswer(question_id="1", user_answer="x", similarity=99, is_correct=False)
    assert not is_answer_correct(answer, QuizType.BLANKS)


def test_thresholds_are_configurable():
    answers = [BlanksAnswer(question_id="1", user_answer="x", similarity=65)]
    assert count_correct(answers, QuizType.BLANKS) == 0
    assert count_correct(answers, QuizType.BLANKS, SimilarityThresholds(blanks=60)) == 1


def test_mcq_without_flag_is_not_correct():
    assert not is_answer_correct(McqAnswer(question_id="1", user_answer="a", similarity=100), QuizType.MCQ)


def test_calculate_similarity():
    assert calculate_similarity("Paris", "paris ") == 100
    assert calculate_similarity("", "") == 100
    assert calculate_similarity("abc", "") == 0
    assert calculate_similarity("kitten", "sitting") == 57
