"""Answer Grader - Scores open-ended answers with a rubric prompt."""

import logging

from pydantic import BaseModel, Field, ValidationError

from medquiz.agents.extractor import find_json_object
from medquiz.config.settings import Settings
from medquiz.exceptions import AnswerValidationError
from medquiz.gemini_client import GeminiClient, GenerationConfig
from medquiz.models.quiz import GradingResult

logger = logging.getLogger(__name__)

GRADING_APOLOGY = "There was an error verifying your answer. Please try again."

GRADING_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "score": {"type": "INTEGER", "description": "Score from 0 to 10"},
        "feedback": {"type": "STRING", "description": "Constructive feedback explaining the score"},
    },
    "required": ["score", "feedback"],
}


class GradingRubric(BaseModel):
    """Word-count band the grader enforces and penalizes against."""

    min_words: int = Field(default=25, ge=1)
    max_words: int | None = Field(default=50, ge=1)

    @classmethod
    def from_settings(cls, settings: Settings) -> "GradingRubric":
        return cls(
            min_words=settings.answer_min_words,
            max_words=settings.answer_max_words or None,
        )

    @property
    def band(self) -> str:
        if self.max_words is None:
            return f"at least {self.min_words} words"
        return f"{self.min_words} to {self.max_words} words"

    @property
    def band_range(self) -> str:
        if self.max_words is None:
            return f"{self.min_words}+"
        return f"{self.min_words}-{self.max_words}"


def count_words(text: str) -> int:
    return len(text.split())


def validate_answer(answer: str, rubric: GradingRubric, strict_max: bool = False) -> str:
    """
    Check an open-ended answer before it is sent for grading.

    Args:
        answer: The user's answer
        rubric: Word-count band
        strict_max: Also reject answers above the band's upper end

    Returns:
        The answer with surrounding whitespace removed

    Raises:
        AnswerValidationError: If the answer is outside the allowed length
    """
    answer = answer.strip()
    words = count_words(answer)
    if words < rubric.min_words:
        raise AnswerValidationError(
            f"Answer is too short: {words} words, at least {rubric.min_words} required"
        )
    if strict_max and rubric.max_words is not None and words > rubric.max_words:
        raise AnswerValidationError(
            f"Answer is too long: {words} words, at most {rubric.max_words} allowed"
        )
    return answer


def build_grading_prompt(question: str, answer: str, rubric: GradingRubric) -> str:
    """Render the grading rubric prompt for one answer."""
    return f"""You are a fair and knowledgeable medical professor grading a student's quiz answer.
The student was required to answer in {rubric.band}. This is a test of both knowledge and conciseness.

Here is the question and the student's answer:
Question: "{question}"
Student's Answer: "{answer}"

Your task is to:
1. Evaluate the medical accuracy of the answer. This is the most important factor.
2. Consider the conciseness. Did the student convey the key information effectively within the word limit?
3. Provide a score from 0 to 10. A score of 10 represents a perfect, accurate, and concise answer. A score of 0 means the answer is completely incorrect.
4. Provide constructive feedback. The feedback should clearly explain why you gave that score. If the answer is good but incomplete due to the word limit, acknowledge this. If the answer is inaccurate, gently correct the student and explain the correct concepts.
5. If the answer is significantly outside the {rubric.band_range} word range, penalize the score accordingly and mention this in the feedback.

Respond with a JSON object with the fields "score" (integer 0-10) and "feedback" (string)."""


def parse_grading(text: str | None) -> GradingResult | None:
    """Parse a grading response, tolerating prose around the JSON."""
    if not text:
        return None
    try:
        return GradingResult.model_validate_json(text)
    except ValidationError:
        pass
    data = find_json_object(text, required_field="score")
    if data is None:
        return None
    try:
        return GradingResult.model_validate(data)
    except ValidationError as e:
        logger.error("Grading response failed validation: %s", e)
        return None


class AnswerGrader:
    """
    Scores one open-ended answer with a single schema-constrained call.

    Grading is best-effort: a failed call or unparseable response returns a
    zero score with an apology so the quiz can continue.
    """

    def __init__(
        self,
        client: GeminiClient,
        *,
        rubric: GradingRubric | None = None,
        model: str | None = None,
        temperature: float = 0.3,
    ) -> None:
        self.client = client
        self.rubric = rubric or GradingRubric()
        self.model = model
        self.config = GenerationConfig(
            temperature=temperature,
            max_output_tokens=1024,
            response_mime_type="application/json",
            response_schema=GRADING_SCHEMA,
        )

    @classmethod
    def from_settings(cls, client: GeminiClient, settings: Settings) -> "AnswerGrader":
        return cls(
            client,
            rubric=GradingRubric.from_settings(settings),
            model=settings.effective_grading_model,
            temperature=settings.grading_temperature,
        )

    async def grade(self, question: str, answer: str) -> GradingResult:
        """
        Grade an answer.

        Args:
            question: Question text
            answer: The user's free-text answer

        Returns:
            GradingResult; score 0 with an apology if grading failed
        """
        prompt = build_grading_prompt(question, answer, self.rubric)
        try:
            outcome = await self.client.generate_once(prompt, model=self.model, config=self.config)
            result = parse_grading(outcome.text)
        except Exception as e:
            logger.exception("Grading call raised: %s", e)
            result = None
        if result is None:
            logger.error("Grading failed, returning fallback score")
            return GradingResult(score=0, feedback=GRADING_APOLOGY)
        return result
