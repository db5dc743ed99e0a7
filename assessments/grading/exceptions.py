class GradingError(Exception):
    """Base class for errors raised by the grading engine."""


class NotFound(GradingError):
    """The submission or its question set could not be loaded."""

    def __init__(self, kind: str, identifier):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")


class PersistenceFailure(GradingError):
    """A grade record could not be written. Safe to retry."""

    retryable = True


class StateViolation(GradingError):
    """An operation was requested in a state that does not accept it."""


class NotAutoGradable(GradingError):
    """The question type has no answer key to compare against."""


class InvalidQuestionIndex(GradingError, IndexError):
    def __init__(self, index, count):
        self.index = index
        self.count = count
        super().__init__(f"Question index {index} out of range (0..{count - 1})")
