"""Data models for quiz generation and grading."""

from .quiz import (
    DIFFICULTY_POINTS,
    FEEDBACK_SECTIONS,
    SKIPPED_ANSWER,
    AnsweredQuestion,
    FeedbackItem,
    FeedbackReport,
    GradingResult,
    MultipleChoiceQuestion,
    # Structured output models
    MultipleChoiceQuestionList,
    OpenEndedQuestion,
    OpenEndedQuestionList,
    QuestionBatch,
    QuestionDifficulty,
    QuestionStyle,
    QuizMode,
    QuizRequest,
    QuizResult,
    QuizSettings,
)

__all__ = [
    "DIFFICULTY_POINTS",
    "FEEDBACK_SECTIONS",
    "SKIPPED_ANSWER",
    "AnsweredQuestion",
    "FeedbackItem",
    "FeedbackReport",
    "GradingResult",
    "MultipleChoiceQuestion",
    "MultipleChoiceQuestionList",
    "OpenEndedQuestion",
    "OpenEndedQuestionList",
    "QuestionBatch",
    "QuestionDifficulty",
    "QuestionStyle",
    "QuizMode",
    "QuizRequest",
    "QuizResult",
    "QuizSettings",
]
