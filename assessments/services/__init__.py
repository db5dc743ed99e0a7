from .attempt import ExamAttempt
from .export import ExportService
from .stores import DatabaseQuestionSetStore, DatabaseSubmissionStore

__all__ = [
    'ExamAttempt', 'ExportService',
    'DatabaseQuestionSetStore', 'DatabaseSubmissionStore',
]
