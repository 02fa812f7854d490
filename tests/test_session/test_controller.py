"""Tests for the Quiz Session Controller."""

import asyncio
import json

import httpx
import pytest

from medquiz.agents.feedback import FeedbackSynthesizer
from medquiz.agents.generator import QuestionGenerator
from medquiz.agents.grader import GRADING_APOLOGY, AnswerGrader
from medquiz.exceptions import AnswerValidationError, InvalidTransitionError, SessionBusyError
from medquiz.models.quiz import SKIPPED_ANSWER, MultipleChoiceQuestion, QuizMode, QuizSettings
from medquiz.session.controller import GENERATION_ERROR_MESSAGE, QuizSessionController, SessionState


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def words(n: int) -> str:
    return " ".join(["word"] * n)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def calls() -> dict:
    """Request counters by call type."""
    return {"generate": 0, "grade": 0, "feedback": 0}


@pytest.fixture
def route(reply, calls, mc_payload, open_ended_payload, feedback_text):
    """
    Handler factory routing generation, grading and feedback requests.

    Grading and feedback requests are told apart by their response schema.
    """

    def factory(grade_score: int = 8, generation=None):
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            schema = body["generationConfig"].get("responseSchema") or {}
            properties = schema.get("properties", {})
            if "score" in properties:
                calls["grade"] += 1
                return reply(json.dumps({"score": grade_score, "feedback": f"Scored {grade_score}."}))
            if "feedback" in properties:
                calls["feedback"] += 1
                return reply(json.dumps({"feedback": feedback_text}))
            calls["generate"] += 1
            if generation is not None:
                return generation(request)
            prompt = body["contents"][0]["parts"][0]["text"]
            payload = mc_payload if "multiple choice" in prompt else open_ended_payload
            return reply(json.dumps(payload))

        return handler

    return factory


@pytest.fixture
def build_controller(make_client, route, clock):
    def factory(handler=None, **kwargs) -> QuizSessionController:
        client = make_client(handler or route())
        return QuizSessionController(
            QuestionGenerator(client),
            AnswerGrader(client),
            FeedbackSynthesizer(client),
            clock=clock,
            **kwargs,
        )

    return factory


async def start_quiz(controller: QuizSessionController, topic: str, mode: QuizMode) -> SessionState:
    controller.select_topic(topic)
    controller.continue_to_settings()
    return await controller.start(QuizSettings(question_count=5, mode=mode))


class TestSetupTransitions:
    """Test topic selection and settings."""

    def test_starts_in_selecting(self, build_controller):
        """Test the initial state."""
        assert build_controller().state == SessionState.SELECTING

    def test_select_and_continue(self, build_controller):
        """Test moving from topic selection to settings."""
        controller = build_controller()
        controller.select_topic("Cardiology")
        controller.continue_to_settings()

        assert controller.state == SessionState.PRE_QUIZ_SETTINGS
        assert controller.topic == "Cardiology"

    def test_continue_requires_topic(self, build_controller):
        """Test that settings need a selected topic."""
        with pytest.raises(InvalidTransitionError):
            build_controller().continue_to_settings()

    def test_blank_topic_rejected(self, build_controller):
        """Test that an empty topic cannot be selected."""
        with pytest.raises(ValueError):
            build_controller().select_topic("   ")

    def test_back_to_selection(self, build_controller):
        """Test returning from settings to topic selection."""
        controller = build_controller()
        controller.select_topic("Cardiology")
        controller.continue_to_settings()
        controller.back_to_selection()

        assert controller.state == SessionState.SELECTING

    async def test_start_requires_settings_state(self, build_controller, calls):
        """Test that a quiz cannot start from topic selection."""
        with pytest.raises(InvalidTransitionError):
            await build_controller().start(QuizSettings())
        assert calls["generate"] == 0

    async def test_submit_requires_active(self, build_controller):
        """Test that answers are rejected before the quiz starts."""
        with pytest.raises(InvalidTransitionError):
            await build_controller().submit_answer(0)


class TestMultipleChoiceSession:
    """Test a full multiple choice quiz."""

    async def test_cardiology_quiz_end_to_end(self, build_controller, clock, calls):
        """Test generating, answering, skipping, scoring and feedback."""
        controller = build_controller()
        state = await start_quiz(controller, "Cardiology", QuizMode.MULTIPLE_CHOICE)

        assert state == SessionState.ACTIVE
        assert controller.total_questions == 5
        assert controller.model_used == "model-a"
        assert all(isinstance(q, MultipleChoiceQuestion) for q in controller.questions)

        # correct indices are 1, 2, 3, 0, 1 and points 10, 10, 15, 15, 20
        clock.now += 10
        first = await controller.submit_answer(1)
        assert first.is_correct and first.points == 10
        assert first.time_spent == 10
        assert controller.question_number == 2

        second = await controller.submit_answer(0)
        assert not second.is_correct and second.points == 0

        await controller.submit_answer(3)
        skipped = controller.skip()
        assert skipped.skipped and skipped.selected_index is None

        clock.now += 20
        await controller.submit_answer(1)

        assert controller.state == SessionState.FINISHED
        result = controller.result
        assert result.topic == "Cardiology"
        assert result.score == 45
        assert result.total_points == 70
        assert result.correct_answers == 3
        assert result.total_questions == 5
        assert result.skipped_count == 1
        assert result.time_spent == 30
        assert result.performance_label == "Satisfactory"

        report = await controller.generate_feedback()
        assert not report.is_fallback
        assert report.section("Strengths")
        assert calls == {"generate": 1, "grade": 0, "feedback": 1}

    async def test_progress(self, build_controller):
        """Test progress through the quiz."""
        controller = build_controller()
        await start_quiz(controller, "Cardiology", QuizMode.MULTIPLE_CHOICE)

        assert controller.progress == 0.0
        await controller.submit_answer(0)
        assert controller.progress == pytest.approx(0.2)

    @pytest.mark.parametrize("answer", ["B", 4, -1, True])
    async def test_invalid_choice_rejected(self, build_controller, answer):
        """Test that only option indices 0-3 are accepted."""
        controller = build_controller()
        await start_quiz(controller, "Cardiology", QuizMode.MULTIPLE_CHOICE)

        with pytest.raises(AnswerValidationError):
            await controller.submit_answer(answer)
        assert controller.question_number == 1
        assert controller.answers == []

    async def test_no_actions_after_finish(self, build_controller):
        """Test that a finished quiz takes no more answers."""
        controller = build_controller()
        await start_quiz(controller, "Cardiology", QuizMode.MULTIPLE_CHOICE)
        for _ in range(5):
            controller.skip()

        assert controller.state == SessionState.FINISHED
        assert controller.result.score == 0
        with pytest.raises(InvalidTransitionError):
            controller.skip()


class TestOpenEndedSession:
    """Test a full open-ended quiz."""

    async def test_open_ended_quiz(self, build_controller, calls):
        """Test grading, skipping and the aggregate result."""
        controller = build_controller()
        state = await start_quiz(controller, "Neurology", QuizMode.OPEN_ENDED)
        assert state == SessionState.ACTIVE
        assert isinstance(controller.current_question, str)

        graded = await controller.submit_answer(words(30))
        assert graded.score == 8
        assert graded.is_correct
        assert graded.feedback == "Scored 8."

        skipped = controller.skip()
        assert skipped.answer_text == SKIPPED_ANSWER
        assert skipped.score == 0

        for _ in range(3):
            await controller.submit_answer(words(40))

        result = controller.result
        assert result.score == 32
        assert result.total_points == 50
        assert result.correct_answers == 4
        assert calls["grade"] == 4

    async def test_low_score_not_correct(self, build_controller, route):
        """Test that scores below the pass mark do not count as correct."""
        controller = build_controller(route(grade_score=5))
        await start_quiz(controller, "Neurology", QuizMode.OPEN_ENDED)

        answered = await controller.submit_answer(words(30))
        assert answered.points == 5
        assert not answered.is_correct

    async def test_short_answer_not_sent(self, build_controller, calls):
        """Test that short answers are rejected without a grading call."""
        controller = build_controller()
        await start_quiz(controller, "Neurology", QuizMode.OPEN_ENDED)

        with pytest.raises(AnswerValidationError):
            await controller.submit_answer(words(10))
        assert calls["grade"] == 0
        assert controller.question_number == 1

    async def test_strict_word_limit(self, build_controller, calls):
        """Test that strict mode rejects long answers."""
        controller = build_controller(strict_word_limit=True)
        await start_quiz(controller, "Neurology", QuizMode.OPEN_ENDED)

        with pytest.raises(AnswerValidationError):
            await controller.submit_answer(words(60))
        assert calls["grade"] == 0

    async def test_grading_failure_still_advances(self, build_controller, make_client, reply, error_reply, open_ended_payload):
        """Test that a failed grading call records a zero and moves on."""

        def handler(request: httpx.Request) -> httpx.Response:
            schema = json.loads(request.content)["generationConfig"].get("responseSchema")
            if schema:
                return error_reply(500, "INTERNAL")
            return reply(json.dumps(open_ended_payload))

        controller = build_controller(handler)
        await start_quiz(controller, "Neurology", QuizMode.OPEN_ENDED)

        answered = await controller.submit_answer(words(30))
        assert answered.score == 0
        assert answered.feedback == GRADING_APOLOGY
        assert controller.question_number == 2


class TestBusyAndErrors:
    """Test in-flight guarding and generation failures."""

    async def test_actions_blocked_while_grading(self, make_client, reply, open_ended_payload, clock):
        """Test that no second action runs while grading is in flight."""
        gate = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            if json.loads(request.content)["generationConfig"].get("responseSchema"):
                await gate.wait()
                return reply('{"score": 9, "feedback": "Great."}')
            return reply(json.dumps(open_ended_payload))

        client = make_client(handler)
        controller = QuizSessionController(QuestionGenerator(client), AnswerGrader(client), clock=clock)
        await start_quiz(controller, "Neurology", QuizMode.OPEN_ENDED)

        task = asyncio.create_task(controller.submit_answer(words(30)))
        await asyncio.sleep(0)

        assert controller.is_busy
        with pytest.raises(SessionBusyError):
            controller.skip()
        with pytest.raises(SessionBusyError):
            await controller.submit_answer(words(30))
        with pytest.raises(SessionBusyError):
            controller.restart()

        gate.set()
        answered = await task
        assert answered.score == 9
        assert not controller.is_busy
        assert len(controller.answers) == 1

    async def test_generation_failure_enters_error(self, build_controller, route, error_reply):
        """Test that an empty batch moves the session to ERROR."""
        controller = build_controller(route(generation=lambda request: error_reply(503, "UNAVAILABLE")))
        state = await start_quiz(controller, "Cardiology", QuizMode.MULTIPLE_CHOICE)

        assert state == SessionState.ERROR
        assert controller.error == GENERATION_ERROR_MESSAGE
        assert controller.current_question is None

    async def test_restart_from_error(self, build_controller, route, error_reply):
        """Test that restart clears the error and returns to selection."""
        controller = build_controller(route(generation=lambda request: error_reply(503, "UNAVAILABLE")))
        await start_quiz(controller, "Cardiology", QuizMode.MULTIPLE_CHOICE)
        controller.restart()

        assert controller.state == SessionState.SELECTING
        assert controller.error is None
        assert controller.topic is None

    async def test_restart_discards_result(self, build_controller):
        """Test that restarting a finished quiz clears its results."""
        controller = build_controller()
        await start_quiz(controller, "Cardiology", QuizMode.MULTIPLE_CHOICE)
        for _ in range(5):
            controller.skip()
        controller.restart()

        assert controller.result is None
        assert controller.answers == []
        assert controller.questions == []


class TestFeedback:
    """Test feedback on completion."""

    async def test_feedback_generated_once(self, build_controller, calls):
        """Test that the report is cached for the session."""
        controller = build_controller()
        await start_quiz(controller, "Cardiology", QuizMode.MULTIPLE_CHOICE)
        for _ in range(5):
            controller.skip()

        first = await controller.generate_feedback()
        second = await controller.generate_feedback()

        assert first is second
        assert controller.report is first
        assert calls["feedback"] == 1

    async def test_feedback_requires_finished(self, build_controller):
        """Test that feedback is only available after the last question."""
        controller = build_controller()
        await start_quiz(controller, "Cardiology", QuizMode.MULTIPLE_CHOICE)

        with pytest.raises(InvalidTransitionError):
            await controller.generate_feedback()
