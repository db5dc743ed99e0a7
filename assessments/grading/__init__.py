from .answers import QuestionSpec, QuestionType, parse_answer
from .base import GradingResult, QuestionGrader
from .exceptions import (
    GradingError, InvalidQuestionIndex, NotAutoGradable, NotFound,
    PersistenceFailure, StateViolation,
)
from .factory import get_grader
from .reconciler import GradeVectors, initial_grades, reconcile_grades
from .scoring import clamp_score, grade, max_total, normalize, score, total
from .session import GradingSessionController, GradingSnapshot, SessionState
from .stores import (
    GradeRecordPatch, QuestionSetStore, SubmissionPayload, SubmissionRecord, SubmissionStore,
)

__all__ = [
    'QuestionSpec', 'QuestionType', 'parse_answer',
    'GradingResult', 'QuestionGrader', 'get_grader',
    'GradingError', 'InvalidQuestionIndex', 'NotAutoGradable', 'NotFound',
    'PersistenceFailure', 'StateViolation',
    'GradeVectors', 'initial_grades', 'reconcile_grades',
    'clamp_score', 'grade', 'max_total', 'normalize', 'score', 'total',
    'GradingSessionController', 'GradingSnapshot', 'SessionState',
    'GradeRecordPatch', 'QuestionSetStore', 'SubmissionPayload', 'SubmissionRecord', 'SubmissionStore',
]
