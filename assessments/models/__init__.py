from .exam import Exam
from .question import Question
from .submission import Submission
from .audit import AuditLog

__all__ = ['Exam', 'Question', 'Submission', 'AuditLog']
