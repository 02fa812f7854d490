"""Results store - profiles, aggregate stats, saved quizzes and leaderboard."""

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from medquiz.config.settings import Settings
from medquiz.exceptions import StorageError
from medquiz.models.quiz import QuizResult
from medquiz.storage.db import create_db_engine, create_session_factory
from medquiz.storage.models import QuizResultRecord, UserProfile

logger = logging.getLogger(__name__)

T = TypeVar("T")

USERNAME_ADJECTIVES = ["Brilliant", "Quick", "Smart", "Sharp", "Bright", "Clever", "Skilled", "Expert", "Wise", "Genius"]
USERNAME_NOUNS = ["Mind", "Doctor", "Healer", "Student", "Scholar", "Medic", "Surgeon", "Pro", "Expert", "Specialist"]
USERNAME_SPECIAL_CHARS = ["!", "#", "$", "%", "&", "+", "*", "~"]


def generate_random_username(rng: random.Random | None = None) -> str:
    """Random display name, e.g. 'SharpHealer042#'."""
    rng = rng or random.Random()
    return (
        f"{rng.choice(USERNAME_ADJECTIVES)}"
        f"{rng.choice(USERNAME_NOUNS)}"
        f"{rng.randrange(1000):03d}"
        f"{rng.choice(USERNAME_SPECIAL_CHARS)}"
    )


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 2,
    base_delay: float = 0.5,
    timeout: float | None = 10.0,
    retry_on_timeout: bool = True,
    description: str = "storage operation",
) -> T:
    """
    Run an async operation with a timeout and a few retries.

    Delay between attempts is base_delay * 1.5 ** (attempt - 1) plus up to
    half a second of jitter.

    Args:
        operation: Zero-argument coroutine factory
        max_retries: Total attempts
        base_delay: First backoff delay in seconds
        timeout: Per-attempt timeout in seconds (None for no limit)
        retry_on_timeout: Whether a timed-out attempt is retried. A timeout
            does not stop a write running in a worker thread, so writes that
            are not idempotent should pass False.
        description: Used in log messages

    Returns:
        The operation's result

    Raises:
        ValueError: If max_retries is less than 1
        The last error once all attempts have failed
    """
    if max_retries < 1:
        raise ValueError("max_retries must be at least 1")
    attempt = 1
    while True:
        try:
            return await asyncio.wait_for(operation(), timeout=timeout)
        except (asyncio.TimeoutError, SQLAlchemyError, StorageError, OSError) as e:
            logger.warning("%s attempt %d/%d failed: %s", description, attempt, max_retries, e)
            if attempt == max_retries:
                raise
            if isinstance(e, asyncio.TimeoutError) and not retry_on_timeout:
                logger.error("%s timed out and may still complete, not retrying", description)
                raise
        delay = base_delay * 1.5 ** (attempt - 1) + random.random() * 0.5
        await asyncio.sleep(delay)
        attempt += 1


class ResultStore:
    """SQLAlchemy-backed store for profiles and quiz results."""

    def __init__(self, database_url: str = "sqlite:///./medquiz.db") -> None:
        self.engine = create_db_engine(database_url)
        self._session_factory = create_session_factory(self.engine)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResultStore":
        return cls(settings.database_url)

    def get_or_create_profile(
        self, uid: str, display_name: str | None = None, email: str | None = None
    ) -> UserProfile:
        with self._session_factory() as session:
            profile = session.get(UserProfile, uid)
            if profile is not None:
                return profile
            profile = UserProfile(
                uid=uid,
                username=generate_random_username(),
                display_name=display_name,
                email=email,
                quiz_count=0,
                total_score=0,
                average_rating=0.0,
            )
            session.add(profile)
            session.commit()
            logger.info("Created profile %s for %s", profile.username, uid)
            return profile

    def get_profile(self, uid: str) -> UserProfile | None:
        try:
            with self._session_factory() as session:
                return session.get(UserProfile, uid)
        except SQLAlchemyError as e:
            logger.error("get_profile failed: %s", e)
            return None

    def update_user_stats(self, uid: str, new_score: int) -> UserProfile:
        """
        Add one quiz to a user's aggregate stats.

        Raises:
            StorageError: If the user has no profile
        """
        with self._session_factory() as session, session.begin():
            profile = session.get(UserProfile, uid, with_for_update=True)
            if profile is None:
                raise StorageError(f"User profile {uid} does not exist")
            profile.quiz_count += 1
            profile.total_score += new_score
            profile.average_rating = profile.total_score / profile.quiz_count
        return profile

    def save_quiz_result(self, uid: str, result: QuizResult, difficulty: str | None = None) -> int:
        record = QuizResultRecord(
            user_id=uid,
            topic=result.topic,
            mode=result.mode.value,
            difficulty=difficulty or result.preparation_context or "General",
            score=result.score,
            total_points=result.total_points,
            total_questions=result.total_questions,
            correct_answers=result.correct_answers,
            time_spent=result.time_spent,
            answers=[
                {
                    "questionId": a.question_id,
                    "userAnswerIndex": a.selected_index,
                    "isCorrect": a.is_correct,
                    "points": a.points,
                    "score": a.score,
                    "skipped": a.skipped,
                }
                for a in result.answers
            ],
            completed_at=result.completed_at,
        )
        with self._session_factory() as session, session.begin():
            session.add(record)
            session.flush()
            record_id = record.id
        logger.info("Saved quiz result %d for %s", record_id, uid)
        return record_id

    def get_leaderboard(self, limit: int = 100) -> list[UserProfile]:
        try:
            with self._session_factory() as session:
                stmt = select(UserProfile).order_by(UserProfile.average_rating.desc()).limit(limit)
                return list(session.scalars(stmt))
        except SQLAlchemyError as e:
            logger.error("get_leaderboard failed: %s", e)
            return []

    def recent_results(self, uid: str, limit: int = 10) -> list[QuizResultRecord]:
        with self._session_factory() as session:
            stmt = (
                select(QuizResultRecord)
                .where(QuizResultRecord.user_id == uid)
                .order_by(QuizResultRecord.completed_at.desc(), QuizResultRecord.id.desc())
                .limit(limit)
            )
            return list(session.scalars(stmt))


async def record_quiz(
    store: ResultStore,
    uid: str,
    result: QuizResult,
    *,
    max_retries: int = 2,
    base_delay: float = 0.5,
    timeout: float = 10.0,
) -> bool:
    """
    Save a finished quiz and update the user's stats, best-effort.

    Returns:
        True if both writes succeeded; failures are logged, not raised
    """
    try:
        await asyncio.to_thread(store.get_or_create_profile, uid)
        await with_retry(
            lambda: asyncio.to_thread(store.save_quiz_result, uid, result),
            max_retries=max_retries,
            base_delay=base_delay,
            timeout=timeout,
            retry_on_timeout=False,
            description="save quiz result",
        )
        await with_retry(
            lambda: asyncio.to_thread(store.update_user_stats, uid, result.score),
            max_retries=max_retries,
            base_delay=base_delay,
            timeout=timeout,
            retry_on_timeout=False,
            description="update quiz stats",
        )
    except (asyncio.TimeoutError, SQLAlchemyError, StorageError, OSError) as e:
        logger.error("Could not record quiz for %s: %s", uid, e)
        return False
    return True
