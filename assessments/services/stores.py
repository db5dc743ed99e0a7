"""
Database-backed implementations of the grading engine's store contracts.
"""
import logging

from django.db import DatabaseError, transaction

from assessments.grading import (
    GradeRecordPatch, NotFound, PersistenceFailure, QuestionSetStore,
    SubmissionPayload, SubmissionRecord, SubmissionStore,
)
from assessments.models import Exam, Submission

logger = logging.getLogger(__name__)


class DatabaseQuestionSetStore(QuestionSetStore):
    def get(self, exam_id):
        try:
            exam = Exam.objects.get(pk=exam_id)
        except Exam.DoesNotExist:
            raise NotFound('Exam', exam_id)
        return exam.get_question_specs()


class DatabaseSubmissionStore(SubmissionStore):
    def get(self, submission_id) -> SubmissionRecord:
        try:
            submission = Submission.objects.get(pk=submission_id)
        except (Submission.DoesNotExist, ValueError):
            raise NotFound('Submission', submission_id)
        return submission.to_record()

    def save(self, submission_id, patch: GradeRecordPatch) -> None:
        try:
            with transaction.atomic():
                locked = Submission.objects.select_for_update().filter(pk=submission_id)
                updated = locked.update(
                    question_scores=patch.question_scores,
                    question_comments=patch.question_comments,
                    total_score=patch.total_score,
                    max_score=patch.max_score,
                    graded=patch.graded,
                    graded_at=patch.graded_at,
                )
        except DatabaseError as e:
            logger.error(f"Grade record write for submission {submission_id} failed: {e}")
            raise PersistenceFailure(f"Could not save grades: {e}") from e

        if updated != 1:
            raise PersistenceFailure(f"Submission {submission_id} no longer exists")

    def create(self, exam_id, payload: SubmissionPayload, candidate=None):
        try:
            submission = Submission.objects.create(
                exam_id=exam_id,
                candidate=candidate,
                candidate_name=payload.candidate_name,
                answers=list(payload.answers),
                integrity_log=list(payload.integrity_log),
                warning_count=payload.warning_count,
                total_defocus_count=payload.total_defocus_count,
                terminated=payload.terminated,
            )
        except DatabaseError as e:
            logger.error(f"Submission for exam {exam_id} could not be stored: {e}")
            raise PersistenceFailure(f"Could not store submission: {e}") from e
        return submission.pk
