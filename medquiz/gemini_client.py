"""Gemini generateContent client with model-fallback retry."""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel, Field

from medquiz.config.settings import Settings
from medquiz.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

# Errors that no other model in the chain can fix
PERMANENT_ERROR_MARKERS = ("PERMISSION_DENIED", "INVALID_ARGUMENT")


class ErrorClass(str, Enum):
    """How a failed attempt affects the fallback chain."""

    PERMANENT = "permanent"
    TRANSIENT = "transient"
    EMPTY = "empty"


class GenerationConfig(BaseModel):
    """Sampling parameters sent as generationConfig."""

    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    top_k: int = Field(default=40, ge=1)
    top_p: float = Field(default=0.95, gt=0.0, le=1.0)
    max_output_tokens: int = Field(default=4096, ge=1, le=8192)
    response_mime_type: str | None = None
    response_schema: dict[str, Any] | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "temperature": self.temperature,
            "topK": self.top_k,
            "topP": self.top_p,
            "maxOutputTokens": self.max_output_tokens,
        }
        if self.response_mime_type:
            payload["responseMimeType"] = self.response_mime_type
        if self.response_schema:
            payload["responseSchema"] = self.response_schema
        return payload


class ModelAttempt(BaseModel):
    """One request made to one model."""

    model: str
    status_code: int | None = None
    error_class: ErrorClass | None = None
    message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error_class is None


class GenerationOutcome(BaseModel):
    """Result of a generation call. text is None when nothing usable came back."""

    text: str | None = None
    model_used: str | None = None
    attempts: list[ModelAttempt] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.text is not None


def classify_error(status_code: int | None, body: str) -> ErrorClass:
    """
    Decide whether a failed request should stop the fallback chain.

    Args:
        status_code: HTTP status, or None for network errors
        body: Response body text (may be JSON)

    Returns:
        PERMANENT for permission/invalid-argument errors, TRANSIENT otherwise
    """
    if status_code is None:
        return ErrorClass.TRANSIENT
    status = ""
    try:
        error = json.loads(body).get("error", {})
        status = str(error.get("status", ""))
    except (ValueError, AttributeError):
        pass
    if status in PERMANENT_ERROR_MARKERS:
        return ErrorClass.PERMANENT
    if any(marker in body for marker in PERMANENT_ERROR_MARKERS):
        return ErrorClass.PERMANENT
    return ErrorClass.TRANSIENT


def extract_text(data: dict[str, Any]) -> str | None:
    """Pull candidates[0].content.parts[0].text out of a response body."""
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    if not isinstance(text, str) or not text.strip():
        return None
    return text


class GeminiClient:
    """
    Async client for the Generative Language generateContent endpoint.

    generate() walks an ordered list of models and returns the first
    successful text. A permission or invalid-argument error stops the chain
    immediately. Every other failure moves on to the next model. Nothing is
    raised to the caller: failures come back as a GenerationOutcome without
    text.
    """

    def __init__(
        self,
        api_key: str | None,
        *,
        models: list[str] | None = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError("GEMINI_API_KEY is not configured")
        self.api_key = api_key
        self.models = list(models or ["gemini-1.5-flash"])
        if not self.models:
            raise ConfigurationError("At least one model is required")
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    @classmethod
    def from_settings(cls, settings: Settings, http_client: httpx.AsyncClient | None = None) -> "GeminiClient":
        return cls(
            settings.gemini_api_key,
            models=settings.gemini_models,
            base_url=settings.gemini_base_url,
            timeout=settings.request_timeout_seconds,
            http_client=http_client,
        )

    def model_url(self, model: str) -> str:
        return f"{self.base_url}/{model}:generateContent"

    async def generate(self, prompt: str, config: GenerationConfig | None = None) -> GenerationOutcome:
        """
        Generate text, falling back through the model chain.

        Args:
            prompt: Prompt text
            config: Sampling parameters (defaults apply when omitted)

        Returns:
            GenerationOutcome with the text and the model that produced it,
            or without text if every attempt failed
        """
        config = config or GenerationConfig()
        outcome = GenerationOutcome()

        for model in self.models:
            logger.info("Trying model %s", model)
            attempt, text = await self._attempt(model, prompt, config)
            outcome.attempts.append(attempt)

            if attempt.succeeded:
                logger.info("Generated %d chars with model %s", len(text or ""), model)
                outcome.text = text
                outcome.model_used = model
                return outcome

            if attempt.error_class == ErrorClass.EMPTY:
                # HTTP success ends the chain even without text
                logger.error("Model %s returned no text", model)
                return outcome

            if attempt.error_class == ErrorClass.PERMANENT:
                logger.error(
                    "Model %s rejected the request (%s), stopping fallback chain",
                    model,
                    attempt.message,
                )
                return outcome

            logger.warning("Model %s failed: %s", model, attempt.message)

        logger.error("All %d models failed", len(self.models))
        return outcome

    async def generate_once(
        self,
        prompt: str,
        *,
        model: str | None = None,
        config: GenerationConfig | None = None,
    ) -> GenerationOutcome:
        """Single request to a single model, with no fallback."""
        model = model or self.models[0]
        attempt, text = await self._attempt(model, prompt, config or GenerationConfig())
        outcome = GenerationOutcome(attempts=[attempt])
        if attempt.succeeded:
            outcome.text = text
            outcome.model_used = model
        else:
            logger.warning("Single-shot call to %s failed: %s", model, attempt.message)
        return outcome

    async def _attempt(
        self, model: str, prompt: str, config: GenerationConfig
    ) -> tuple[ModelAttempt, str | None]:
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": config.to_payload(),
        }
        try:
            response = await self._client.post(
                self.model_url(model),
                headers={"x-goog-api-key": self.api_key},
                json=payload,
            )
        except httpx.TimeoutException as exc:
            return ModelAttempt(model=model, error_class=ErrorClass.TRANSIENT, message=f"timeout: {exc}"), None
        except httpx.RequestError as exc:
            return ModelAttempt(model=model, error_class=ErrorClass.TRANSIENT, message=f"network error: {exc}"), None

        if response.is_error:
            body = response.text
            return (
                ModelAttempt(
                    model=model,
                    status_code=response.status_code,
                    error_class=classify_error(response.status_code, body),
                    message=f"HTTP {response.status_code}: {body[:200]}",
                ),
                None,
            )

        try:
            text = extract_text(response.json())
        except ValueError:
            text = None
        if text is None:
            return (
                ModelAttempt(
                    model=model,
                    status_code=response.status_code,
                    error_class=ErrorClass.EMPTY,
                    message="no generated text in response",
                ),
                None,
            )
        return ModelAttempt(model=model, status_code=response.status_code), text

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "GeminiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
