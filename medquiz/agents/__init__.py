"""AI agents for question generation, grading and feedback."""

from .feedback import FeedbackSynthesizer
from .generator import QuestionGenerator
from .grader import AnswerGrader, GradingRubric

__all__ = [
    "QuestionGenerator",
    "AnswerGrader",
    "GradingRubric",
    "FeedbackSynthesizer",
]
