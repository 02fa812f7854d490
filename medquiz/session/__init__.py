"""Quiz session state machine."""

from .controller import QuizSessionController, SessionState

__all__ = ["QuizSessionController", "SessionState"]
