"""Shared test fixtures and configuration for pytest."""

from datetime import datetime
from typing import Any, Callable

import httpx
import pytest

from medquiz.gemini_client import GeminiClient
from medquiz.models.quiz import (
    AnsweredQuestion,
    MultipleChoiceQuestion,
    QuestionDifficulty,
    QuestionStyle,
    QuizMode,
    QuizRequest,
    QuizResult,
)

TEST_MODELS = ["model-a", "model-b", "model-c"]


def gemini_response(text: str | None, status_code: int = 200) -> httpx.Response:
    """Build a generateContent response body carrying text."""
    if text is None:
        return httpx.Response(status_code, json={"candidates": []})
    return httpx.Response(
        status_code,
        json={"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]},
    )


def gemini_error(status_code: int, status: str, message: str = "error") -> httpx.Response:
    return httpx.Response(
        status_code,
        json={"error": {"code": status_code, "status": status, "message": message}},
    )


@pytest.fixture
def reply() -> Callable[..., httpx.Response]:
    """Factory for successful model responses."""
    return gemini_response


@pytest.fixture
def error_reply() -> Callable[..., httpx.Response]:
    """Factory for API error responses."""
    return gemini_error


@pytest.fixture
def make_client() -> Callable[..., GeminiClient]:
    """
    Factory for a GeminiClient whose HTTP traffic goes to a handler.

    The handler receives each httpx.Request and returns an httpx.Response
    (or raises an httpx exception).
    """

    def factory(handler: Callable[[httpx.Request], httpx.Response], models: list[str] | None = None) -> GeminiClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return GeminiClient("test-key", models=models or list(TEST_MODELS), http_client=http_client)

    return factory


@pytest.fixture
def sample_request() -> QuizRequest:
    """Create a sample multiple choice QuizRequest."""
    return QuizRequest(
        topic="Cardiology",
        preparation_context="USMLE Step 1",
        question_style=QuestionStyle.CONCEPTUAL,
        question_count=5,
        mode=QuizMode.MULTIPLE_CHOICE,
    )


@pytest.fixture
def open_ended_request() -> QuizRequest:
    """Create a sample open-ended QuizRequest."""
    return QuizRequest(
        topic="Neurology",
        question_style=QuestionStyle.CASE_BASED,
        question_count=5,
        mode=QuizMode.OPEN_ENDED,
    )


@pytest.fixture
def sample_question() -> MultipleChoiceQuestion:
    """Create a sample MultipleChoiceQuestion."""
    return MultipleChoiceQuestion(
        id="q1",
        text="What is the normal resting heart rate for healthy adults?",
        options=[
            "40-60 beats per minute",
            "60-100 beats per minute",
            "100-120 beats per minute",
            "120-140 beats per minute",
        ],
        correct_index=1,
        explanation="Normal resting heart rate is 60-100 bpm.",
        difficulty=QuestionDifficulty.BEGINNER,
    )


def mc_item(index: int, difficulty: str = "Beginner", correct: int = 0) -> dict[str, Any]:
    return {
        "id": f"q{index}",
        "question": f"Cardiology question {index}?",
        "options": [f"Option {index}{letter}" for letter in "ABCD"],
        "correctAnswer": correct,
        "explanation": f"Explanation {index}.",
        "difficulty": difficulty,
    }


@pytest.fixture
def mc_payload() -> dict[str, Any]:
    """Five valid multiple choice items with mixed difficulty."""
    difficulties = ["Beginner", "Beginner", "Intermediate", "Intermediate", "Advanced"]
    return {"questions": [mc_item(i, d, correct=i % 4) for i, d in enumerate(difficulties, 1)]}


@pytest.fixture
def open_ended_payload() -> dict[str, Any]:
    """Five open-ended question strings."""
    return {
        "questions": [
            "Describe the pathophysiology of an ischemic stroke.",
            "Explain how multiple sclerosis affects nerve conduction.",
            "A 70-year-old presents with a resting tremor. Outline your differential diagnosis.",
            "What distinguishes upper from lower motor neuron lesions?",
            "Summarize first-line management of status epilepticus.",
        ]
    }


@pytest.fixture
def sample_result() -> QuizResult:
    """A finished multiple choice quiz with one correct, one wrong and one skipped answer."""
    options = ["A1", "B1", "C1", "D1"]
    answers = (
        AnsweredQuestion(
            question_id="q1",
            question="First question?",
            mode=QuizMode.MULTIPLE_CHOICE,
            selected_index=0,
            is_correct=True,
            points=10,
            options=options,
            correct_index=0,
            explanation="A1 is right.",
            time_spent=12.0,
        ),
        AnsweredQuestion(
            question_id="q2",
            question="Second question?",
            mode=QuizMode.MULTIPLE_CHOICE,
            selected_index=2,
            is_correct=False,
            points=0,
            options=options,
            correct_index=1,
            explanation="B1 is right.",
            time_spent=20.0,
        ),
        AnsweredQuestion(
            question_id="q3",
            question="Third question?",
            mode=QuizMode.MULTIPLE_CHOICE,
            selected_index=None,
            skipped=True,
            options=options,
            correct_index=3,
            explanation="D1 is right.",
        ),
    )
    return QuizResult(
        topic="Cardiology",
        mode=QuizMode.MULTIPLE_CHOICE,
        preparation_context="Board Certification",
        score=10,
        total_points=45,
        total_questions=3,
        correct_answers=1,
        time_spent=95.0,
        answers=answers,
        completed_at=datetime(2024, 1, 1, 12, 0, 0),
    )


@pytest.fixture
def open_ended_result() -> QuizResult:
    """A finished open-ended quiz with one graded and one skipped answer."""
    answers = (
        AnsweredQuestion(
            question_id="q1",
            question="Describe the pathophysiology of an ischemic stroke.",
            mode=QuizMode.OPEN_ENDED,
            answer_text="Occlusion of a cerebral artery reduces perfusion.",
            is_correct=True,
            points=8,
            score=8,
            feedback="Accurate and concise.",
        ),
        AnsweredQuestion(
            question_id="q2",
            question="Explain how multiple sclerosis affects nerve conduction.",
            mode=QuizMode.OPEN_ENDED,
            answer_text="[SKIPPED]",
            skipped=True,
            score=0,
        ),
    )
    return QuizResult(
        topic="Neurology",
        mode=QuizMode.OPEN_ENDED,
        score=8,
        total_points=20,
        total_questions=2,
        correct_answers=1,
        time_spent=61.0,
        answers=answers,
        completed_at=datetime(2024, 1, 1, 12, 0, 0),
    )


@pytest.fixture
def feedback_text() -> str:
    return (
        "# Overall Performance Summary:\n"
        "You averaged 5/10.\n\n"
        "# Strengths\n"
        "- Solid grasp of perfusion.\n\n"
        "# Areas for Improvement\n"
        "- The skipped question on demyelination suggests a gap.\n\n"
        "# Your Personalized Study Plan\n"
        "* Review saltatory conduction.\n"
        "* Make flashcards for stroke syndromes.\n"
    )
