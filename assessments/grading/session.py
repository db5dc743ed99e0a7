"""
Grading session controller.

Owns the grade, override and comment vectors of one submission while a
grader works on it:

    LOADING -> READY -> SAVING -> SAVED
                 ^         |
                 +--- SAVE_FAILED

Saving recomputes the totals from the vectors and writes the whole grade
record in one call; a failed save leaves every in-memory edit in place.
"""
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from django.utils import timezone

from .answers import QuestionSpec
from .exceptions import InvalidQuestionIndex, NotFound, PersistenceFailure, StateViolation
from .reconciler import align_answers, auto_scores, initial_grades, reconcile_grades
from .scoring import clamp_score, max_total, percentage, total
from .stores import GradeRecordPatch, QuestionSetStore, SubmissionRecord, SubmissionStore

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    LOADING = 'loading'
    READY = 'ready'
    SAVING = 'saving'
    SAVED = 'saved'
    SAVE_FAILED = 'save_failed'


EDITABLE_STATES = (SessionState.READY, SessionState.SAVE_FAILED)


@dataclass(frozen=True)
class GradingSnapshot:
    submission_id: object
    state: SessionState
    scores: List[float]
    overrides: List[bool]
    comments: List[str]
    auto_scores: List[float]
    auto_gradable: List[bool]
    total_score: float
    max_score: float
    percentage: float
    zero_mark_questions: List[int]


class GradingSessionController:
    def __init__(
        self,
        submission_store: SubmissionStore,
        question_store: QuestionSetStore,
        clock: Optional[Callable] = None
    ):
        self.submissions = submission_store
        self.questions_store = question_store
        self.clock = clock or timezone.now
        self.state = SessionState.LOADING
        self.submission: Optional[SubmissionRecord] = None
        self.questions: List[QuestionSpec] = []
        self.answers: list = []
        self.scores: List[float] = []
        self.overrides: List[bool] = []
        self.comments: List[str] = []
        self._save_lock = threading.Lock()
        self.last_violation: Optional[StateViolation] = None

    @classmethod
    def open(cls, submission_id, submission_store, question_store, clock=None):
        controller = cls(submission_store, question_store, clock=clock)
        controller.load(submission_id)
        return controller

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self, submission_id):
        """Load a submission and its question set. Raises ``NotFound``."""
        self.state = SessionState.LOADING
        submission = self.submissions.get(submission_id)
        if submission is None:
            raise NotFound('Submission', submission_id)
        questions = list(self.questions_store.get(submission.exam_id) or [])
        if not questions:
            raise NotFound('Question set', submission.exam_id)

        self.submission = submission
        self.questions = questions
        self.answers = align_answers(submission.answers, len(questions))

        if submission.has_grade_record:
            vectors = reconcile_grades(
                questions, self.answers,
                submission.question_scores, submission.question_comments
            )
            logger.info(
                f"Reopened graded submission {submission.id}: "
                f"{sum(vectors.overrides)} overridden question(s)"
            )
        else:
            vectors = initial_grades(questions, self.answers)
            logger.info(f"Opened submission {submission.id} for first grading")

        self.scores = vectors.scores
        self.overrides = vectors.overrides
        self.comments = vectors.comments
        self.state = SessionState.READY
        return self

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def total_score(self) -> float:
        return total(self.scores)

    @property
    def max_score(self) -> float:
        return max_total(self.questions)

    def auto_score(self, index: int) -> float:
        self._check_index(index)
        return auto_scores([self.questions[index]], [self.answers[index]])[0]

    def is_auto_gradable(self, index: int) -> bool:
        self._check_index(index)
        return self.questions[index].is_auto_gradable

    def is_editable(self, index: int) -> bool:
        """Whether a manual score may be entered for ``index`` right now."""
        return not self.is_auto_gradable(index) or self.overrides[index]

    def snapshot(self) -> GradingSnapshot:
        total_score = self.total_score
        max_score = self.max_score
        return GradingSnapshot(
            submission_id=self.submission.id if self.submission else None,
            state=self.state,
            scores=list(self.scores),
            overrides=list(self.overrides),
            comments=list(self.comments),
            auto_scores=auto_scores(self.questions, self.answers),
            auto_gradable=[q.is_auto_gradable for q in self.questions],
            total_score=total_score,
            max_score=max_score,
            percentage=percentage(total_score, max_score),
            zero_mark_questions=[i for i, s in enumerate(self.scores) if s == 0],
        )

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def set_override(self, index: int, enabled: bool) -> float:
        """Lock or unlock an auto-gradable score. Returns the resulting score."""
        self._check_index(index)
        if not self._begin_edit('set_override'):
            return self.scores[index]
        question = self.questions[index]

        if not question.is_auto_gradable:
            logger.debug(f"Override ignored for manual question {index}")
            return self.scores[index]

        self.overrides[index] = bool(enabled)
        if not enabled:
            self.scores[index] = self.auto_score(index)
        return self.scores[index]

    def toggle_override(self, index: int) -> float:
        self._check_index(index)
        return self.set_override(index, not self.overrides[index])

    def set_score(self, index: int, value) -> float:
        """Enter a manual score, clamped into ``[0, points]``."""
        self._check_index(index)
        if not self._begin_edit('set_score'):
            return self.scores[index]

        if not self.is_editable(index):
            logger.warning(
                f"Score edit ignored for locked question {index} "
                f"of submission {self.submission.id}"
            )
            return self.scores[index]

        self.scores[index] = clamp_score(value, self.questions[index].points)
        return self.scores[index]

    def set_comment(self, index: int, comment) -> str:
        self._check_index(index)
        if not self._begin_edit('set_comment'):
            return self.comments[index]
        self.comments[index] = '' if comment is None else str(comment)
        return self.comments[index]

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------

    def save(self) -> Optional[GradeRecordPatch]:
        """
        Persist the grade record. Returns the written patch, or ``None`` when
        the request was rejected (another save in flight, or not editable);
        the reason is then kept in ``last_violation``.
        Raises ``PersistenceFailure`` when the store could not write; the
        session then sits in SAVE_FAILED and ``save()`` may be retried.
        """
        if not self._save_lock.acquire(blocking=False):
            self._reject(f"Save rejected for submission {self.submission.id}: already saving")
            return None
        try:
            if self.state not in EDITABLE_STATES:
                self._reject(f"Save rejected in state {self.state.value}")
                return None

            self.state = SessionState.SAVING
            patch = GradeRecordPatch(
                question_scores=list(self.scores),
                question_comments=list(self.comments),
                total_score=self.total_score,
                max_score=self.max_score,
                graded_at=self.clock(),
            )
            try:
                self.submissions.save(self.submission.id, patch)
            except Exception as e:
                self.state = SessionState.SAVE_FAILED
                logger.error(f"Saving grades for submission {self.submission.id} failed: {e}")
                if isinstance(e, PersistenceFailure):
                    raise
                raise PersistenceFailure(str(e)) from e

            self.state = SessionState.SAVED
            logger.info(
                f"Saved grades for submission {self.submission.id}: "
                f"{patch.total_score}/{patch.max_score}"
            )
            return patch
        finally:
            self._save_lock.release()

    # ------------------------------------------------------------------

    def _begin_edit(self, operation: str) -> bool:
        if self.state not in EDITABLE_STATES:
            self._reject(f"{operation} ignored in state {self.state.value}")
            return False
        self.state = SessionState.READY
        return True

    def _reject(self, message: str):
        """Record a rejected request. It is logged, never raised."""
        self.last_violation = StateViolation(message)
        logger.warning(message)

    def _check_index(self, index: int):
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(self.questions):
            raise InvalidQuestionIndex(index, len(self.questions))
