"""Pydantic models for quiz data structures."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

SKIPPED_ANSWER = "[SKIPPED]"


class QuestionDifficulty(str, Enum):
    """Question difficulty levels."""

    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"


DIFFICULTY_POINTS: dict[QuestionDifficulty, int] = {
    QuestionDifficulty.BEGINNER: 10,
    QuestionDifficulty.INTERMEDIATE: 15,
    QuestionDifficulty.ADVANCED: 20,
}


class QuestionStyle(str, Enum):
    """Preferred framing for generated questions."""

    CONCEPTUAL = "Conceptual Understanding"
    FACTUAL_RECALL = "Factual Recall"
    CASE_BASED = "Case-based Scenarios"


class QuizMode(str, Enum):
    """How questions are answered."""

    MULTIPLE_CHOICE = "multiple-choice"
    OPEN_ENDED = "open-ended"


class QuizRequest(BaseModel):
    """Settings submitted to the question generator."""

    topic: str = Field(..., min_length=1, description="Medical topic/specialty")
    preparation_context: str = Field(
        default="",
        max_length=100,
        description="What the user is preparing for (exam name, learning goal)",
    )
    question_style: QuestionStyle = Field(default=QuestionStyle.CONCEPTUAL)
    question_count: int = Field(default=5, ge=5, le=20, description="Number of questions")
    mode: QuizMode = Field(default=QuizMode.MULTIPLE_CHOICE)

    model_config = ConfigDict(frozen=True)

    @field_validator("topic", "preparation_context")
    @classmethod
    def strip_text(cls, v: str) -> str:
        """Strip surrounding whitespace."""
        return v.strip()

    @field_validator("topic")
    @classmethod
    def validate_topic(cls, v: str) -> str:
        """Reject whitespace-only topics."""
        if not v:
            raise ValueError("Topic cannot be empty")
        return v


class MultipleChoiceQuestion(BaseModel):
    """A single multiple choice question with exactly one correct option."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    text: str = Field(..., alias="question", min_length=1)
    options: list[str] = Field(..., description="Exactly 4 answer options")
    correct_index: int = Field(..., alias="correctAnswer", ge=0, le=3)
    explanation: str = Field(default="")
    difficulty: QuestionDifficulty = Field(default=QuestionDifficulty.INTERMEDIATE)
    points: int = Field(default=0, ge=0)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("options")
    @classmethod
    def validate_options(cls, v: list[str]) -> list[str]:
        """Ensure there are exactly four non-empty options."""
        if len(v) != 4:
            raise ValueError(f"Expected exactly 4 options, got {len(v)}")
        for i, option in enumerate(v):
            if not option or not option.strip():
                raise ValueError(f"Option {i} cannot be empty")
        return v

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        """Models sometimes emit numeric ids."""
        if isinstance(v, int):
            return str(v)
        return v

    @model_validator(mode="after")
    def default_points(self) -> "MultipleChoiceQuestion":
        """Fill in points from the difficulty band when missing."""
        if self.points == 0:
            self.points = DIFFICULTY_POINTS[self.difficulty]
        return self

    @property
    def correct_option(self) -> str:
        """Text of the correct option."""
        return self.options[self.correct_index]


# Open-ended questions are plain prompt strings
OpenEndedQuestion = str


class MultipleChoiceQuestionList(BaseModel):
    """Payload shape expected from the model for multiple choice quizzes."""

    questions: list[MultipleChoiceQuestion]


class OpenEndedQuestionList(BaseModel):
    """Payload shape expected from the model for open-ended quizzes."""

    questions: list[str]

    @field_validator("questions")
    @classmethod
    def strip_questions(cls, v: list[str]) -> list[str]:
        """Strip each question and reject blank ones."""
        stripped = [q.strip() for q in v]
        if not all(stripped):
            raise ValueError("Questions cannot be empty")
        return stripped


class QuestionBatch(BaseModel):
    """Questions produced for one request. Empty means generation failed."""

    request: QuizRequest
    questions: list[MultipleChoiceQuestion] | list[str] = Field(default_factory=list)
    model_used: str | None = None

    @property
    def is_empty(self) -> bool:
        return len(self.questions) == 0


class AnsweredQuestion(BaseModel):
    """The terminal action taken on one question (answer or skip)."""

    question_id: str
    question: str
    mode: QuizMode
    selected_index: int | None = None
    answer_text: str | None = None
    skipped: bool = False
    is_correct: bool = False
    points: int = Field(default=0, ge=0)
    score: int | None = Field(default=None, ge=0, le=10)
    feedback: str | None = None
    options: list[str] = Field(default_factory=list)
    correct_index: int | None = None
    explanation: str | None = None
    time_spent: float = Field(default=0.0, ge=0.0)

    model_config = ConfigDict(frozen=True)

    @property
    def display_answer(self) -> str:
        """The answer as text, with skips rendered as the sentinel."""
        if self.skipped:
            return SKIPPED_ANSWER
        if self.mode == QuizMode.MULTIPLE_CHOICE and self.selected_index is not None:
            return self.options[self.selected_index]
        return self.answer_text or ""


class QuizResult(BaseModel):
    """Aggregate of a completed quiz session."""

    topic: str
    mode: QuizMode
    preparation_context: str = ""
    score: int = Field(..., ge=0)
    total_points: int = Field(..., ge=0)
    total_questions: int = Field(..., ge=0)
    correct_answers: int = Field(..., ge=0)
    time_spent: float = Field(default=0.0, ge=0.0, description="Elapsed seconds")
    answers: tuple[AnsweredQuestion, ...] = ()
    completed_at: datetime = Field(default_factory=datetime.now)

    model_config = ConfigDict(frozen=True)

    @property
    def percentage(self) -> int:
        """Score as a rounded percentage of the points available."""
        if self.total_points == 0:
            return 0
        return round(self.score / self.total_points * 100)

    @property
    def performance_label(self) -> str:
        pct = self.percentage
        if pct >= 90:
            return "Excellent"
        if pct >= 75:
            return "Good"
        if pct >= 60:
            return "Satisfactory"
        return "Needs Improvement"

    @property
    def skipped_count(self) -> int:
        return sum(1 for a in self.answers if a.skipped)


class GradingResult(BaseModel):
    """Score and feedback for one open-ended answer."""

    score: int = Field(..., ge=0, le=10)
    feedback: str

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, v: Any) -> Any:
        """Round and clamp model scores into 0-10."""
        if isinstance(v, str):
            try:
                v = float(v.strip())
            except ValueError:
                return v
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return max(0, min(10, int(round(v))))
        return v


class FeedbackItem(BaseModel):
    """One question/answer/score triple sent to the feedback synthesizer."""

    question: str
    answer: str
    score: int = Field(..., ge=0, le=10)


FEEDBACK_SECTIONS = (
    "Overall Performance Summary",
    "Strengths",
    "Areas for Improvement",
    "Your Personalized Study Plan",
)


class FeedbackReport(BaseModel):
    """Narrative study-plan feedback for a completed quiz."""

    text: str
    is_fallback: bool = False

    model_config = ConfigDict(frozen=True)

    def sections(self) -> dict[str, str]:
        """
        Split the report on markdown level-one headings.

        Returns:
            Mapping of heading title to section body, in report order
        """
        sections: dict[str, str] = {}
        current: str | None = None
        body: list[str] = []
        for line in self.text.splitlines():
            if line.startswith("# "):
                if current is not None:
                    sections[current] = "\n".join(body).strip()
                current = line[2:].strip().rstrip(":").strip("*").strip()
                body = []
            elif current is not None:
                body.append(line)
        if current is not None:
            sections[current] = "\n".join(body).strip()
        return sections

    def section(self, name: str) -> str | None:
        """Look up a section by case-insensitive heading prefix."""
        wanted = name.lower()
        for title, body in self.sections().items():
            heading = title.lower()
            if heading.startswith(wanted) or wanted.startswith(heading):
                return body
        return None

    @property
    def has_recognized_sections(self) -> bool:
        return any(self.section(marker) is not None for marker in FEEDBACK_SECTIONS)


class QuizSettings(BaseModel):
    """Pre-quiz choices made after a topic is selected."""

    preparation_context: str = Field(default="", max_length=100)
    question_style: QuestionStyle = Field(default=QuestionStyle.CONCEPTUAL)
    question_count: int = Field(default=5, ge=5, le=20)
    mode: QuizMode = Field(default=QuizMode.MULTIPLE_CHOICE)

    def to_request(self, topic: str) -> QuizRequest:
        return QuizRequest(
            topic=topic,
            preparation_context=self.preparation_context,
            question_style=self.question_style,
            question_count=self.question_count,
            mode=self.mode,
        )
