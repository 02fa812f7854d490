"""Quiz Session Controller - Drives one quiz from topic selection to results."""

import logging
import time
from contextlib import contextmanager
from enum import Enum
from typing import Callable, Iterator

from medquiz.agents.feedback import FeedbackSynthesizer
from medquiz.agents.generator import QuestionGenerator
from medquiz.agents.grader import AnswerGrader, validate_answer
from medquiz.exceptions import AnswerValidationError, InvalidTransitionError, SessionBusyError
from medquiz.models.quiz import (
    SKIPPED_ANSWER,
    AnsweredQuestion,
    FeedbackReport,
    MultipleChoiceQuestion,
    QuizMode,
    QuizRequest,
    QuizResult,
    QuizSettings,
)

logger = logging.getLogger(__name__)

GENERATION_ERROR_MESSAGE = "Could not generate questions for this topic. Please try another."


class SessionState(str, Enum):
    """Controller states."""

    SELECTING = "selecting"
    PRE_QUIZ_SETTINGS = "pre-quiz"
    LOADING = "loading"
    ACTIVE = "active"
    FINISHED = "finished"
    ERROR = "error"


class QuizSessionController:
    """
    State machine for a single quiz session.

    SELECTING -> PRE_QUIZ_SETTINGS -> LOADING -> ACTIVE -> FINISHED, with
    ERROR reachable from LOADING when generation returns nothing. Each
    question takes exactly one terminal action (submit or skip) and the
    session never goes back. restart() returns to SELECTING from any state
    and discards everything.

    Only one generation or grading call may be in flight at a time.
    """

    def __init__(
        self,
        generator: QuestionGenerator,
        grader: AnswerGrader,
        feedback: FeedbackSynthesizer | None = None,
        *,
        strict_word_limit: bool = False,
        pass_score: int = 7,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.generator = generator
        self.grader = grader
        self.feedback_synthesizer = feedback
        self.strict_word_limit = strict_word_limit
        self.pass_score = pass_score
        self._clock = clock
        self._busy = False
        self._reset()

    def _reset(self) -> None:
        self.state = SessionState.SELECTING
        self.topic: str | None = None
        self.request: QuizRequest | None = None
        self.questions: list[MultipleChoiceQuestion] | list[str] = []
        self.answers: list[AnsweredQuestion] = []
        self.error: str | None = None
        self.model_used: str | None = None
        self._result: QuizResult | None = None
        self._report: FeedbackReport | None = None
        self._index = 0
        self._started_at: float | None = None
        self._question_started_at: float | None = None

    def _require(self, *states: SessionState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise InvalidTransitionError(f"Cannot do this while {self.state.value} (requires {allowed})")

    @contextmanager
    def _in_flight(self) -> Iterator[None]:
        if self._busy:
            raise SessionBusyError("A request is already in progress for this session")
        self._busy = True
        try:
            yield
        finally:
            self._busy = False

    # Topic selection and settings

    def select_topic(self, topic: str) -> None:
        self._require(SessionState.SELECTING)
        topic = topic.strip()
        if not topic:
            raise ValueError("Topic cannot be empty")
        self.topic = topic

    def continue_to_settings(self) -> None:
        self._require(SessionState.SELECTING)
        if not self.topic:
            raise InvalidTransitionError("Select a topic first")
        self.state = SessionState.PRE_QUIZ_SETTINGS

    def back_to_selection(self) -> None:
        self._require(SessionState.PRE_QUIZ_SETTINGS)
        self.state = SessionState.SELECTING

    async def start(self, settings: QuizSettings) -> SessionState:
        """
        Generate questions and begin the quiz.

        Args:
            settings: Pre-quiz choices

        Returns:
            ACTIVE if questions were generated, ERROR otherwise

        Raises:
            pydantic.ValidationError: If the settings do not form a valid
                request (raised before any network call)
        """
        self._require(SessionState.PRE_QUIZ_SETTINGS)
        request = settings.to_request(self.topic or "")

        with self._in_flight():
            self.request = request
            self.error = None
            self.state = SessionState.LOADING
            batch = await self.generator.generate(request)

        if batch.is_empty:
            self.error = GENERATION_ERROR_MESSAGE
            self.state = SessionState.ERROR
            return self.state

        self.questions = list(batch.questions)
        self.model_used = batch.model_used
        self.answers = []
        self._index = 0
        self._started_at = self._clock()
        self._question_started_at = self._started_at
        self.state = SessionState.ACTIVE
        logger.info("Quiz started with %d questions", len(self.questions))
        return self.state

    # Answering

    @property
    def mode(self) -> QuizMode | None:
        return self.request.mode if self.request else None

    @property
    def current_question(self) -> MultipleChoiceQuestion | str | None:
        if self.state != SessionState.ACTIVE:
            return None
        return self.questions[self._index]

    @property
    def question_number(self) -> int:
        """1-based position of the current question."""
        return self._index + 1

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @property
    def progress(self) -> float:
        if not self.questions:
            return 0.0
        return len(self.answers) / len(self.questions)

    @property
    def is_busy(self) -> bool:
        return self._busy

    def _elapsed_on_question(self) -> float:
        if self._question_started_at is None:
            return 0.0
        return max(0.0, self._clock() - self._question_started_at)

    async def submit_answer(self, answer: int | str) -> AnsweredQuestion:
        """
        Submit an answer to the current question and advance.

        Args:
            answer: Option index (multiple choice) or free text (open-ended)

        Returns:
            The recorded answer, including correctness or grading feedback

        Raises:
            AnswerValidationError: If the answer is rejected before grading
        """
        self._require(SessionState.ACTIVE)
        if self._busy:
            raise SessionBusyError("A request is already in progress for this session")

        question = self.questions[self._index]
        if self.mode == QuizMode.MULTIPLE_CHOICE:
            answered = self._answer_multiple_choice(question, answer)
        else:
            answered = await self._answer_open_ended(question, answer)

        self._record(answered)
        return answered

    def _answer_multiple_choice(self, question: MultipleChoiceQuestion, answer: int | str) -> AnsweredQuestion:
        if isinstance(answer, bool) or not isinstance(answer, int):
            raise AnswerValidationError("Multiple choice answers must be an option index")
        if not 0 <= answer < len(question.options):
            raise AnswerValidationError(f"Option index must be between 0 and {len(question.options) - 1}")

        is_correct = answer == question.correct_index
        return AnsweredQuestion(
            question_id=question.id,
            question=question.text,
            mode=QuizMode.MULTIPLE_CHOICE,
            selected_index=answer,
            is_correct=is_correct,
            points=question.points if is_correct else 0,
            options=list(question.options),
            correct_index=question.correct_index,
            explanation=question.explanation,
            time_spent=self._elapsed_on_question(),
        )

    async def _answer_open_ended(self, question: str, answer: int | str) -> AnsweredQuestion:
        if not isinstance(answer, str):
            raise AnswerValidationError("Open-ended answers must be text")
        answer = validate_answer(answer, self.grader.rubric, strict_max=self.strict_word_limit)

        with self._in_flight():
            grading = await self.grader.grade(question, answer)

        return AnsweredQuestion(
            question_id=f"q{self._index + 1}",
            question=question,
            mode=QuizMode.OPEN_ENDED,
            answer_text=answer,
            is_correct=grading.score >= self.pass_score,
            points=grading.score,
            score=grading.score,
            feedback=grading.feedback,
            time_spent=self._elapsed_on_question(),
        )

    def skip(self) -> AnsweredQuestion:
        """Skip the current question with a sentinel answer and zero points."""
        self._require(SessionState.ACTIVE)
        if self._busy:
            raise SessionBusyError("A request is already in progress for this session")

        question = self.questions[self._index]
        if isinstance(question, MultipleChoiceQuestion):
            answered = AnsweredQuestion(
                question_id=question.id,
                question=question.text,
                mode=QuizMode.MULTIPLE_CHOICE,
                selected_index=None,
                skipped=True,
                options=list(question.options),
                correct_index=question.correct_index,
                explanation=question.explanation,
                time_spent=self._elapsed_on_question(),
            )
        else:
            answered = AnsweredQuestion(
                question_id=f"q{self._index + 1}",
                question=question,
                mode=QuizMode.OPEN_ENDED,
                answer_text=SKIPPED_ANSWER,
                skipped=True,
                score=0,
                time_spent=self._elapsed_on_question(),
            )
        self._record(answered)
        return answered

    def _record(self, answered: AnsweredQuestion) -> None:
        self.answers.append(answered)
        if self._index == len(self.questions) - 1:
            self._finish()
        else:
            self._index += 1
            self._question_started_at = self._clock()

    def _finish(self) -> None:
        request = self.request
        answers = tuple(self.answers)
        if request.mode == QuizMode.MULTIPLE_CHOICE:
            total_points = sum(q.points for q in self.questions)
        else:
            total_points = 10 * len(self.questions)

        self._result = QuizResult(
            topic=request.topic,
            mode=request.mode,
            preparation_context=request.preparation_context,
            score=sum(a.points for a in answers),
            total_points=total_points,
            total_questions=len(self.questions),
            correct_answers=sum(1 for a in answers if a.is_correct),
            time_spent=max(0.0, self._clock() - (self._started_at or self._clock())),
            answers=answers,
        )
        self.state = SessionState.FINISHED
        logger.info(
            "Quiz finished: %d/%d points, %d/%d correct",
            self._result.score,
            self._result.total_points,
            self._result.correct_answers,
            self._result.total_questions,
        )

    # Completion

    @property
    def result(self) -> QuizResult | None:
        return self._result

    @property
    def report(self) -> FeedbackReport | None:
        return self._report

    async def generate_feedback(self) -> FeedbackReport:
        """
        Produce the study-plan report for the finished quiz.

        The report is generated once and cached for the session.
        """
        self._require(SessionState.FINISHED)
        if self._report is not None:
            return self._report
        if self.feedback_synthesizer is None:
            raise InvalidTransitionError("No feedback synthesizer configured")

        with self._in_flight():
            self._report = await self.feedback_synthesizer.synthesize_for_result(self._result)
        return self._report

    def restart(self) -> None:
        """Discard the session and return to topic selection."""
        if self._busy:
            raise SessionBusyError("Cannot restart while a request is in progress")
        self._reset()
