"""
Question and answer types used by the grading engine.

Candidate answers arrive as raw JSON values whose shape depends on the
question type (an option index, a boolean, a string, or nothing at all).
``parse_answer`` turns them into one of the tagged answer types below so the
rest of the engine never has to guess what a raw value means.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union


class QuestionType(str, Enum):
    SINGLE_CHOICE = 'single_choice'
    BOOLEAN = 'boolean'
    SHORT_TEXT = 'short_text'
    FREE_TEXT = 'free_text'


AUTO_GRADABLE_TYPES = frozenset({
    QuestionType.SINGLE_CHOICE,
    QuestionType.BOOLEAN,
    QuestionType.SHORT_TEXT,
})


@dataclass(frozen=True)
class QuestionSpec:
    """Immutable view of a published question."""
    question_type: QuestionType
    points: float
    text: str = ''
    options: tuple = field(default_factory=tuple)
    correct_option_index: Optional[int] = None
    correct_boolean: Any = None
    correct_text: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'question_type', QuestionType(self.question_type))
        object.__setattr__(self, 'points', float(self.points))
        object.__setattr__(self, 'options', tuple(self.options or ()))
        if self.points <= 0:
            raise ValueError(f"Question points must be positive, got {self.points}")

    @property
    def is_auto_gradable(self) -> bool:
        return self.question_type in AUTO_GRADABLE_TYPES


@dataclass(frozen=True)
class NoAnswer:
    """The candidate left the question unanswered."""


@dataclass(frozen=True)
class ChoiceAnswer:
    index: Optional[int]


@dataclass(frozen=True)
class BooleanAnswer:
    value: Any


@dataclass(frozen=True)
class TextAnswer:
    text: str


Answer = Union[NoAnswer, ChoiceAnswer, BooleanAnswer, TextAnswer]


def _is_blank(raw) -> bool:
    return raw is None or (isinstance(raw, str) and not raw.strip())


def _as_index(raw) -> Optional[int]:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(raw) if raw.is_integer() else None
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return None


def parse_answer(question_type, raw) -> Answer:
    """Wrap a raw stored answer in the answer type for ``question_type``."""
    question_type = QuestionType(question_type)

    if isinstance(raw, (NoAnswer, ChoiceAnswer, BooleanAnswer, TextAnswer)):
        return raw

    if _is_blank(raw):
        return NoAnswer()

    if question_type == QuestionType.BOOLEAN:
        return BooleanAnswer(raw)

    if question_type == QuestionType.SINGLE_CHOICE:
        return ChoiceAnswer(_as_index(raw))

    return TextAnswer(str(raw))
