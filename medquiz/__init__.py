"""AI-assisted medical education quizzes."""

__version__ = "0.1.0"
