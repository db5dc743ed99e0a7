"""
Storage contracts the grading engine depends on.

The engine never talks to the ORM directly; it is handed a question-set
store and a submission store. ``assessments.services.stores`` provides the
database-backed implementations.
"""
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, List, Optional

from .answers import QuestionSpec


@dataclass(frozen=True)
class SubmissionRecord:
    id: Any
    exam_id: Any
    answers: list
    graded: bool = False
    question_scores: Optional[list] = None
    question_comments: Optional[list] = None
    integrity_log: list = field(default_factory=list)
    warning_count: int = 0
    total_defocus_count: int = 0
    terminated: bool = False

    @property
    def has_grade_record(self) -> bool:
        return self.graded and self.question_scores is not None


@dataclass(frozen=True)
class GradeRecordPatch:
    """The exact set of fields a grading save overwrites, all at once."""
    question_scores: List[float]
    question_comments: List[str]
    total_score: float
    max_score: float
    graded_at: datetime
    graded: bool = True

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class SubmissionPayload:
    """What a finished exam attempt hands to the submission store."""
    answers: list
    integrity_log: list
    warning_count: int
    total_defocus_count: int
    terminated: bool
    candidate_name: str = ''


class QuestionSetStore(ABC):
    @abstractmethod
    def get(self, exam_id) -> List[QuestionSpec]:
        """Ordered questions of an exam. Raises ``NotFound``."""


class SubmissionStore(ABC):
    @abstractmethod
    def get(self, submission_id) -> SubmissionRecord:
        """Raises ``NotFound``."""

    @abstractmethod
    def save(self, submission_id, patch: GradeRecordPatch) -> None:
        """Write ``patch`` atomically. Raises ``PersistenceFailure``."""

    @abstractmethod
    def create(self, exam_id, payload: SubmissionPayload):
        """Persist a new submission and return its id."""
