"""
Pure scoring functions: normalization, objective scores and aggregates.

Nothing here touches the database or keeps state, so the same function
can be used when a submission is first scored and whenever an override has
to be re-derived later.
"""
import math
from typing import Iterable

from django.conf import settings

from .answers import QuestionSpec, parse_answer
from .base import GradingResult
from .factory import get_grader


def _decimal_places() -> int:
    return getattr(settings, 'GRADING_SERVICE', {}).get('SCORE_DECIMAL_PLACES', 2)


def normalize(question: QuestionSpec, raw_answer):
    """Canonical form of ``raw_answer`` for comparison with the question's key."""
    answer = parse_answer(question.question_type, raw_answer)
    return get_grader(question.question_type).normalize_answer(answer)


def normalize_key(question: QuestionSpec):
    return get_grader(question.question_type).normalize_key(question)


def grade(question: QuestionSpec, raw_answer) -> GradingResult:
    answer = parse_answer(question.question_type, raw_answer)
    return get_grader(question.question_type).grade(question, answer)


def score(question: QuestionSpec, raw_answer) -> float:
    """Points the objective scorer awards. Free-text questions always score 0."""
    return grade(question, raw_answer).points_earned


def as_number(value) -> float:
    """Numeric value of a score entry; anything non-numeric counts as 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def clamp_score(value, points: float) -> float:
    """Score in ``[0, points]`` at storage precision, so totals are exact sums."""
    return round_score(min(max(as_number(value), 0.0), float(points)))


def round_score(value: float) -> float:
    return round(value, _decimal_places())


def total(scores: Iterable) -> float:
    return round_score(sum(as_number(s) for s in scores))


def max_total(questions: Iterable[QuestionSpec]) -> float:
    return round_score(sum(q.points for q in questions))


def percentage(earned: float, possible: float) -> float:
    if possible <= 0:
        return 0.0
    return round_score(earned / possible * 100)
