"""Exceptions raised by the exam engine."""


class ExamEngineError(Exception):
    """Base class for all engine errors."""


class InvalidConfiguration(ExamEngineError, ValueError):
    """Exam configuration is missing or malformed. Nothing was created."""


class NoQuestionsAvailable(ExamEngineError):
    """No candidate questions remain after filtering."""


class InvalidSessionState(ExamEngineError):
    """Operation is not allowed in the session's current status."""


class SessionFinished(InvalidSessionState):
    """The session has ended; start a new one."""


class IndexOutOfRange(ExamEngineError, IndexError):
    """Question index outside the session's question list."""


class InvalidAnswer(ExamEngineError, ValueError):
    """Option is not one of the current question's options."""


class StoreUnavailable(ExamEngineError):
    """The persistence medium failed or is missing."""
