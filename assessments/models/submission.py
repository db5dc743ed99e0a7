from django.db import models
from django.contrib.auth.models import User

from assessments.grading import SubmissionRecord
from assessments.integrity import summarize


class Submission(models.Model):
    """
    A candidate's finished attempt. Created once at submit time; after that
    only the grade record fields change.
    """
    exam = models.ForeignKey(
        'Exam',
        on_delete=models.CASCADE,
        related_name='submissions',
        db_index=True
    )
    candidate = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='submissions'
    )
    candidate_name = models.CharField(max_length=200, blank=True)
    submitted_at = models.DateTimeField(auto_now_add=True, db_index=True)

    # Aligned 1:1 with the exam's questions
    answers = models.JSONField(default=list, blank=True)

    # Integrity monitor output; counters are derived from the log
    integrity_log = models.JSONField(default=list, blank=True)
    warning_count = models.PositiveIntegerField(default=0)
    total_defocus_count = models.PositiveIntegerField(default=0)
    terminated = models.BooleanField(default=False, db_index=True)

    # Grade record
    question_scores = models.JSONField(null=True, blank=True)
    question_comments = models.JSONField(null=True, blank=True)
    total_score = models.DecimalField(max_digits=7, decimal_places=2, null=True, blank=True)
    max_score = models.DecimalField(max_digits=7, decimal_places=2, null=True, blank=True)
    graded = models.BooleanField(default=False, db_index=True)
    graded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-submitted_at']

    def __str__(self):
        name = self.candidate_name or (self.candidate.username if self.candidate else 'anonymous')
        return f"{name} - {self.exam.title}"

    @property
    def percentage(self):
        if self.total_score is None or not self.max_score:
            return None
        return round(float(self.total_score) / float(self.max_score) * 100, 2)

    @property
    def integrity_summary(self):
        return summarize(self.integrity_log)

    def to_record(self) -> SubmissionRecord:
        return SubmissionRecord(
            id=self.pk,
            exam_id=self.exam_id,
            answers=list(self.answers or []),
            graded=self.graded,
            question_scores=self.question_scores,
            question_comments=self.question_comments,
            integrity_log=list(self.integrity_log or []),
            warning_count=self.warning_count,
            total_defocus_count=self.total_defocus_count,
            terminated=self.terminated,
        )
