"""Question Generator - Generates quiz questions through the Gemini fallback chain."""

import logging
import random
from typing import Any

from medquiz.agents.extractor import (
    BatchPolicy,
    extract_multiple_choice_questions,
    extract_open_ended_questions,
)
from medquiz.agents.prompt_builder import build_prompt
from medquiz.config.settings import Settings
from medquiz.gemini_client import GeminiClient, GenerationConfig
from medquiz.graph.state import GenerationState, create_initial_state
from medquiz.graph.workflow import compile_workflow
from medquiz.models.quiz import QuestionBatch, QuizMode, QuizRequest

logger = logging.getLogger(__name__)


class QuestionGenerator:
    """
    Produces a QuestionBatch for a QuizRequest.

    The three workflow nodes (build_prompt, call_model, extract) are
    methods on this class so the compiled graph shares the injected client.
    Any failure along the way yields an empty batch, never an exception.
    """

    def __init__(
        self,
        client: GeminiClient,
        *,
        config: GenerationConfig | None = None,
        cache_bust: bool = True,
        policy: BatchPolicy = BatchPolicy.REJECT_ALL,
        rng: random.Random | None = None,
    ) -> None:
        self.client = client
        self.config = config or GenerationConfig()
        self.cache_bust = cache_bust
        self.policy = policy
        self.rng = rng or random.Random()
        self._workflow = compile_workflow(self)

    @classmethod
    def from_settings(cls, client: GeminiClient, settings: Settings) -> "QuestionGenerator":
        config = GenerationConfig(
            temperature=settings.generation_temperature,
            top_k=settings.top_k,
            top_p=settings.top_p,
            max_output_tokens=settings.max_output_tokens,
        )
        return cls(
            client,
            config=config,
            cache_bust=settings.cache_busting,
            policy=BatchPolicy(settings.question_batch_policy),
        )

    def build_prompt(self, state: GenerationState) -> dict[str, Any]:
        """Workflow node: render the request into a prompt."""
        prompt = build_prompt(state["request"], cache_bust=self.cache_bust, rng=self.rng)
        return {"prompt": prompt}

    async def call_model(self, state: GenerationState) -> dict[str, Any]:
        """Workflow node: send the prompt through the model fallback chain."""
        outcome = await self.client.generate(state["prompt"], self.config)
        errors = list(state.get("errors", []))
        if not outcome.ok:
            errors.append("No model produced a usable response")
        return {
            "raw_text": outcome.text,
            "model_used": outcome.model_used,
            "attempts": outcome.attempts,
            "errors": errors,
        }

    def extract(self, state: GenerationState) -> dict[str, Any]:
        """Workflow node: parse and validate questions from the raw text."""
        request = state["request"]
        if request.mode == QuizMode.MULTIPLE_CHOICE:
            questions = extract_multiple_choice_questions(state["raw_text"], self.policy)
        else:
            questions = extract_open_ended_questions(state["raw_text"], self.policy)

        errors = list(state.get("errors", []))
        if not questions:
            errors.append("Response did not contain valid questions")
        elif len(questions) != request.question_count:
            logger.warning(
                "Requested %d questions, model returned %d",
                request.question_count,
                len(questions),
            )
        return {"questions": questions, "errors": errors}

    async def generate(self, request: QuizRequest) -> QuestionBatch:
        """
        Generate questions for a request.

        Args:
            request: Validated quiz settings

        Returns:
            QuestionBatch; empty when generation or extraction failed
        """
        logger.info(
            "Generating %d %s questions for topic %r",
            request.question_count,
            request.mode.value,
            request.topic,
        )
        try:
            final_state = await self._workflow.ainvoke(create_initial_state(request))
        except Exception as e:
            logger.exception("Question generation failed: %s", e)
            return QuestionBatch(request=request)

        for error in final_state.get("errors", []):
            logger.error("Generation for %r: %s", request.topic, error)

        return QuestionBatch(
            request=request,
            questions=final_state.get("questions", []),
            model_used=final_state.get("model_used"),
        )
