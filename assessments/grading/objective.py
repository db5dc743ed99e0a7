"""
Objective graders - exact-match scoring against an answer key.

Each grader normalizes the candidate answer and the answer key the same way
and awards full points on equality, nothing otherwise. There is no partial
credit. Free-text questions have no key; their grader always awards zero and
leaves the real score to a human.
"""
from typing import Optional

from .answers import (
    Answer, BooleanAnswer, ChoiceAnswer, QuestionSpec, TextAnswer, _as_index,
)
from .base import GradingResult, QuestionGrader
from .exceptions import NotAutoGradable


def coerce_boolean(raw) -> bool:
    """``True`` and the string ``"true"`` are true; anything else is false."""
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        return raw == 'true'
    return False


def normalize_text(raw) -> str:
    if raw is None:
        return ''
    return str(raw).strip().lower()


class SingleChoiceGrader(QuestionGrader):
    def get_method_name(self) -> str:
        return 'exact_choice'

    def normalize_answer(self, answer: Answer) -> Optional[int]:
        if isinstance(answer, ChoiceAnswer):
            return answer.index
        return None

    def normalize_key(self, question: QuestionSpec) -> Optional[int]:
        if question.correct_option_index is None:
            return None
        return _as_index(question.correct_option_index)

    def grade(self, question: QuestionSpec, answer: Answer) -> GradingResult:
        # An unanswered question must not match a missing key
        if self.normalize_key(question) is None:
            return GradingResult(0.0, question.points, False, True, self.get_method_name())
        return super().grade(question, answer)


class BooleanGrader(QuestionGrader):
    def get_method_name(self) -> str:
        return 'exact_boolean'

    def normalize_answer(self, answer: Answer) -> bool:
        if isinstance(answer, BooleanAnswer):
            return coerce_boolean(answer.value)
        return False

    def normalize_key(self, question: QuestionSpec) -> bool:
        return coerce_boolean(question.correct_boolean)


class ShortTextGrader(QuestionGrader):
    def get_method_name(self) -> str:
        return 'exact_text'

    def normalize_answer(self, answer: Answer) -> str:
        if isinstance(answer, TextAnswer):
            return normalize_text(answer.text)
        return ''

    def normalize_key(self, question: QuestionSpec) -> str:
        return normalize_text(question.correct_text)


class FreeTextGrader(QuestionGrader):
    auto_gradable = False

    def get_method_name(self) -> str:
        return 'manual'

    def normalize_answer(self, answer: Answer):
        raise NotAutoGradable("Free-text answers are never compared")

    def normalize_key(self, question: QuestionSpec):
        raise NotAutoGradable("Free-text questions have no answer key")

    def grade(self, question: QuestionSpec, answer: Answer) -> GradingResult:
        return GradingResult(
            points_earned=0.0,
            max_points=question.points,
            is_correct=False,
            auto_graded=False,
            grading_method=self.get_method_name()
        )
