"""State carried through the question generation workflow."""

from typing import Any, TypedDict

from medquiz.gemini_client import ModelAttempt
from medquiz.models.quiz import QuizRequest


class GenerationState(TypedDict):
    """
    State for the question generation graph.

    Each node returns a partial update; keys are overwritten, not merged.
    """

    request: QuizRequest
    prompt: str | None
    raw_text: str | None
    model_used: str | None
    attempts: list[ModelAttempt]
    questions: list[Any]
    errors: list[str]


def create_initial_state(request: QuizRequest) -> GenerationState:
    """
    Create the starting state for one generation run.

    Args:
        request: Validated quiz settings

    Returns:
        GenerationState with empty outputs
    """
    return {
        "request": request,
        "prompt": None,
        "raw_text": None,
        "model_used": None,
        "attempts": [],
        "questions": [],
        "errors": [],
    }
