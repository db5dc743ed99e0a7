from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from assessments.grading import QuestionSpec


class Question(models.Model):
    class QuestionType(models.TextChoices):
        SINGLE_CHOICE = 'single_choice', 'Single Choice'
        BOOLEAN = 'boolean', 'True/False'
        SHORT_TEXT = 'short_text', 'Short Text'
        FREE_TEXT = 'free_text', 'Free Text'

    exam = models.ForeignKey(
        'Exam',
        on_delete=models.CASCADE,
        related_name='questions',
        db_index=True
    )
    question_type = models.CharField(
        max_length=20,
        choices=QuestionType.choices,
        db_index=True
    )
    text = models.TextField()
    points = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal('1.00'),
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    order = models.PositiveIntegerField(default=0)
    options = models.JSONField(null=True, blank=True)
    correct_option_index = models.PositiveIntegerField(null=True, blank=True)
    # Stored raw; "true" and true are equivalent once normalized
    correct_boolean = models.JSONField(null=True, blank=True)
    correct_text = models.CharField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['order', 'id']

    def __str__(self):
        return f"Q{self.order}: {self.text[:50]}..."

    @property
    def is_auto_gradable(self):
        return self.question_type != self.QuestionType.FREE_TEXT

    def clean(self):
        if self.question_type == self.QuestionType.SINGLE_CHOICE:
            if not self.options:
                raise ValidationError({'options': 'Single-choice questions need options.'})
            if self.correct_option_index is None or self.correct_option_index >= len(self.options):
                raise ValidationError({'correct_option_index': 'Must point at one of the options.'})
        elif self.question_type == self.QuestionType.BOOLEAN:
            if self.correct_boolean is None:
                raise ValidationError({'correct_boolean': 'True/false questions need a key.'})
        elif self.question_type == self.QuestionType.SHORT_TEXT:
            if not self.correct_text.strip():
                raise ValidationError({'correct_text': 'Short-text questions need a key.'})

    def to_spec(self) -> QuestionSpec:
        return QuestionSpec(
            question_type=self.question_type,
            points=float(self.points),
            text=self.text,
            options=tuple(self.options or ()),
            correct_option_index=self.correct_option_index,
            correct_boolean=self.correct_boolean,
            correct_text=self.correct_text,
        )
