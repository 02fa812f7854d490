"""Local persistence for profiles, results and the leaderboard."""

from .store import ResultStore, record_quiz, with_retry

__all__ = ["ResultStore", "record_quiz", "with_retry"]
