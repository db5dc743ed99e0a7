from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from .answers import Answer, QuestionSpec


@dataclass(frozen=True)
class GradingResult:
    points_earned: float
    max_points: float
    is_correct: bool
    auto_graded: bool
    grading_method: str

    @property
    def percentage(self) -> float:
        if self.max_points == 0:
            return 0.0
        return (self.points_earned / self.max_points) * 100


class QuestionGrader(ABC):
    """Scores one question type against its answer key."""

    auto_gradable = True

    @abstractmethod
    def normalize_answer(self, answer: Answer) -> Any:
        pass

    @abstractmethod
    def normalize_key(self, question: QuestionSpec) -> Any:
        pass

    @abstractmethod
    def get_method_name(self) -> str:
        pass

    def grade(self, question: QuestionSpec, answer: Answer) -> GradingResult:
        is_correct = self.normalize_answer(answer) == self.normalize_key(question)
        return GradingResult(
            points_earned=question.points if is_correct else 0.0,
            max_points=question.points,
            is_correct=is_correct,
            auto_graded=True,
            grading_method=self.get_method_name()
        )
