"""Feedback Synthesizer - Writes a study plan from a finished quiz."""

import logging
from typing import Sequence

from pydantic import BaseModel, ValidationError

from medquiz.agents.extractor import find_json_object
from medquiz.config.settings import Settings
from medquiz.gemini_client import GeminiClient, GenerationConfig
from medquiz.models.quiz import (
    SKIPPED_ANSWER,
    FeedbackItem,
    FeedbackReport,
    QuizMode,
    QuizResult,
)

logger = logging.getLogger(__name__)

FEEDBACK_APOLOGY = "There was an error generating your feedback. Please try again."

FEEDBACK_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "feedback": {
            "type": "STRING",
            "description": "A comprehensive, personalized feedback and study guide for the user.",
        },
    },
    "required": ["feedback"],
}


class _FeedbackPayload(BaseModel):
    feedback: str


def results_from_quiz(result: QuizResult) -> list[FeedbackItem]:
    """
    Turn a quiz result into feedback items.

    Multiple choice answers are rendered as the chosen option text and
    scored 10 when correct, 0 otherwise.
    """
    items = []
    for answered in result.answers:
        if answered.mode == QuizMode.MULTIPLE_CHOICE:
            score = 10 if answered.is_correct else 0
        else:
            score = answered.score or 0
        items.append(
            FeedbackItem(
                question=answered.question,
                answer=answered.display_answer,
                score=score,
            )
        )
    return items


def build_feedback_prompt(topic: str, results: Sequence[FeedbackItem]) -> str:
    """Render the study-plan prompt for a finished quiz."""
    lines = []
    for item in results:
        lines.append(
            f'- Question: "{item.question}"\n'
            f'  User\'s Answer: "{item.answer}"\n'
            f"  Score: {item.score}/10"
        )
    results_block = "\n".join(lines)

    return f"""You are a supportive and insightful medical tutor. A student has just completed a quiz on the topic of "{topic}".

Here are their results:
{results_block}

Your task is to provide comprehensive, personalized feedback and a study guide based on their performance. If the user's answer is "{SKIPPED_ANSWER}", it means they did not answer the question. Please acknowledge this in your feedback, especially in the "Areas for Improvement" section.

1. **# Overall Performance Summary:** Start with an encouraging summary of their overall performance. Calculate the average score and comment on it.

2. **# Strengths:** Point out specific questions where the student did well (high scores) and explain what made their answers strong.

3. **# Areas for Improvement:** Gently identify patterns in the questions where the student struggled (low scores or skipped). Don't just list the wrong answers. Instead, try to diagnose the underlying knowledge gaps. Treat a skipped question as a sign of a possible gap in that area, not merely as a wrong answer.

4. **# Your Personalized Study Plan:** Provide actionable, concrete steps for improvement based on both incorrect answers and skipped questions. This is the most important part. Be specific.
    * Suggest 2-3 core concepts they should review based on their incorrect answers or skipped questions.
    * Recommend specific study strategies (e.g., flashcards for key terminology, a video on the relevant pathophysiology).
    * Frame this as a clear, manageable plan to help them succeed.

Structure your response in clear sections with markdown headings (e.g., "# Overall Performance Summary"). Use bullet points to make it easy to read. Your tone should be encouraging and aimed at building confidence.

Respond with a JSON object with a single field "feedback" containing the full markdown text."""


def parse_feedback(text: str | None) -> str | None:
    if not text:
        return None
    try:
        return _FeedbackPayload.model_validate_json(text).feedback
    except ValidationError:
        pass
    data = find_json_object(text, required_field="feedback")
    if data is None or not isinstance(data.get("feedback"), str):
        return None
    return data["feedback"]


class FeedbackSynthesizer:
    """
    Generates one narrative report per finished quiz.

    Single-shot like grading: a failure returns a fixed apology instead of
    walking the model chain.
    """

    def __init__(
        self,
        client: GeminiClient,
        *,
        model: str | None = None,
        temperature: float = 0.7,
        max_output_tokens: int = 4096,
    ) -> None:
        self.client = client
        self.model = model
        self.config = GenerationConfig(
            temperature=temperature,
            max_output_tokens=max_output_tokens,
            response_mime_type="application/json",
            response_schema=FEEDBACK_SCHEMA,
        )

    @classmethod
    def from_settings(cls, client: GeminiClient, settings: Settings) -> "FeedbackSynthesizer":
        return cls(
            client,
            model=settings.effective_grading_model,
            temperature=settings.feedback_temperature,
            max_output_tokens=settings.max_output_tokens,
        )

    async def synthesize(self, topic: str, results: Sequence[FeedbackItem]) -> FeedbackReport:
        """
        Generate the feedback report.

        Args:
            topic: Quiz topic
            results: Question/answer/score triples in presentation order

        Returns:
            FeedbackReport; the apology text if generation failed
        """
        if not results:
            return FeedbackReport(text=FEEDBACK_APOLOGY, is_fallback=True)

        prompt = build_feedback_prompt(topic, results)
        try:
            outcome = await self.client.generate_once(prompt, model=self.model, config=self.config)
            feedback = parse_feedback(outcome.text)
        except Exception as e:
            logger.exception("Feedback call raised: %s", e)
            feedback = None

        if not feedback:
            logger.error("Feedback generation failed for topic %r", topic)
            return FeedbackReport(text=FEEDBACK_APOLOGY, is_fallback=True)
        return FeedbackReport(text=feedback)

    async def synthesize_for_result(self, result: QuizResult) -> FeedbackReport:
        return await self.synthesize(result.topic, results_from_quiz(result))
