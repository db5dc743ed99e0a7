"""
Override reconciliation.

Overrides are not stored. When a grade record is opened again, each stored
score of an auto-gradable question is compared with what the objective
scorer produces for the same answer right now; a mismatch means a grader
changed it by hand. A changed answer key is indistinguishable from a manual
override under this rule.
"""
import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .answers import QuestionSpec
from .scoring import as_number, clamp_score, score

logger = logging.getLogger(__name__)


@dataclass
class GradeVectors:
    scores: List[float]
    overrides: List[bool]
    comments: List[str]


def align_answers(answers: Optional[Sequence], count: int) -> list:
    """Answers padded with ``None`` (unanswered) or truncated to ``count``."""
    answers = list(answers or [])
    return (answers + [None] * count)[:count]


def auto_scores(questions: Sequence[QuestionSpec], answers: Sequence) -> List[float]:
    answers = align_answers(answers, len(questions))
    return [score(q, a) for q, a in zip(questions, answers)]


def scores_differ(stored, auto: float) -> bool:
    return not math.isclose(as_number(stored), auto, rel_tol=0, abs_tol=1e-9)


def initial_grades(questions: Sequence[QuestionSpec], answers: Sequence) -> GradeVectors:
    return GradeVectors(
        scores=auto_scores(questions, answers),
        overrides=[False] * len(questions),
        comments=[''] * len(questions),
    )


def reconcile_grades(
    questions: Sequence[QuestionSpec],
    answers: Sequence,
    stored_scores: Sequence,
    stored_comments: Optional[Sequence] = None
) -> GradeVectors:
    """Grade vectors from a persisted record, with overrides re-derived."""
    computed = auto_scores(questions, answers)
    stored_scores = list(stored_scores or [])
    stored_comments = list(stored_comments or [])

    if len(stored_scores) != len(questions):
        logger.warning(
            f"Stored grade vector has {len(stored_scores)} entries for "
            f"{len(questions)} questions; aligning"
        )

    scores, overrides, comments = [], [], []
    for index, question in enumerate(questions):
        if index < len(stored_scores):
            raw = stored_scores[index]
            value = clamp_score(raw, question.points)
            if value != as_number(raw) or as_number(raw) != raw:
                logger.warning(f"Stored score {raw!r} for question {index} clamped to {value}")
        else:
            value = computed[index]

        scores.append(value)
        overrides.append(question.is_auto_gradable and scores_differ(value, computed[index]))

        comment = stored_comments[index] if index < len(stored_comments) else ''
        comments.append('' if comment is None else str(comment))

    return GradeVectors(scores=scores, overrides=overrides, comments=comments)
