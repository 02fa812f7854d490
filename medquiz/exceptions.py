"""Exception types raised by the quiz pipeline."""


class MedQuizError(Exception):
    """Base class for all medquiz errors."""


class ConfigurationError(MedQuizError):
    """Required configuration (such as the API key) is missing or invalid."""


class AnswerValidationError(MedQuizError):
    """A user answer was rejected before any network call."""


class InvalidTransitionError(MedQuizError):
    """A session operation was called in a state that does not allow it."""


class SessionBusyError(MedQuizError):
    """A session already has a generation or grading call in flight."""


class StorageError(MedQuizError):
    """A results-store operation failed."""
