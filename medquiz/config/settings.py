"""Application settings and configuration."""

from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

# Load .env file if present
load_dotenv()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Gemini API
    gemini_api_key: str = Field(
        ...,
        description="Google Generative Language API key",
        validation_alias="GEMINI_API_KEY",
    )
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/models",
        description="Base URL for model generateContent calls",
        validation_alias="GEMINI_BASE_URL",
    )

    # Model Configuration
    gemini_models: list[str] = Field(
        default=["gemini-1.5-flash", "gemini-1.5-pro", "gemini-1.0-pro"],
        min_length=1,
        description="Ordered model fallback chain for question generation",
        validation_alias="GEMINI_MODELS",
    )
    grading_model: str | None = Field(
        default=None,
        description="Model used for grading and feedback (defaults to first in chain)",
        validation_alias="GRADING_MODEL",
    )

    # Generation Settings
    generation_temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Temperature for question generation",
        validation_alias="GENERATION_TEMPERATURE",
    )
    top_k: int = Field(default=40, ge=1, validation_alias="TOP_K")
    top_p: float = Field(default=0.95, gt=0.0, le=1.0, validation_alias="TOP_P")
    max_output_tokens: int = Field(
        default=4096,
        ge=1,
        le=8192,
        description="Max output tokens per generation call",
        validation_alias="MAX_OUTPUT_TOKENS",
    )

    grading_temperature: float = Field(
        default=0.3,  # grading should be stable between retakes
        ge=0.0,
        le=2.0,
        description="Temperature for answer grading",
        validation_alias="GRADING_TEMPERATURE",
    )
    feedback_temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Temperature for study-plan feedback",
        validation_alias="FEEDBACK_TEMPERATURE",
    )

    request_timeout_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="Timeout applied to every generation/grading request",
        validation_alias="REQUEST_TIMEOUT_SECONDS",
    )

    cache_busting: bool = Field(
        default=True,
        description="Append a random suffix to the topic so repeated quizzes differ",
        validation_alias="CACHE_BUSTING",
    )

    question_batch_policy: Literal["reject_all", "keep_valid"] = Field(
        default="reject_all",
        description="What to do when some generated questions fail validation",
        validation_alias="QUESTION_BATCH_POLICY",
    )

    # Grading rubric
    answer_min_words: int = Field(
        default=25,
        ge=1,
        description="Minimum words for an open-ended answer",
        validation_alias="ANSWER_MIN_WORDS",
    )
    answer_max_words: int = Field(
        default=50,
        ge=0,
        description="Upper end of the target word band (0 for a minimum-only rubric)",
        validation_alias="ANSWER_MAX_WORDS",
    )
    strict_word_limit: bool = Field(
        default=False,
        description="Reject answers above answer_max_words instead of penalizing them",
        validation_alias="STRICT_WORD_LIMIT",
    )
    open_ended_pass_score: int = Field(
        default=7,
        ge=0,
        le=10,
        description="Score at or above which an open-ended answer counts as correct",
        validation_alias="OPEN_ENDED_PASS_SCORE",
    )

    # Storage
    database_url: str = Field(
        default="sqlite:///./medquiz.db",
        description="SQLAlchemy database URL for results and profiles",
        validation_alias="DATABASE_URL",
    )
    storage_max_retries: int = Field(default=2, ge=1, le=10, validation_alias="STORAGE_MAX_RETRIES")
    storage_retry_delay: float = Field(default=0.5, ge=0.0, validation_alias="STORAGE_RETRY_DELAY")
    storage_timeout_seconds: float = Field(default=10.0, gt=0.0, validation_alias="STORAGE_TIMEOUT_SECONDS")

    log_level: str = Field(default="WARNING", validation_alias="LOG_LEVEL")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def check_word_band(self) -> "Settings":
        """Ensure the word band is ordered."""
        if self.answer_max_words and self.answer_max_words < self.answer_min_words:
            raise ValueError("ANSWER_MAX_WORDS must be >= ANSWER_MIN_WORDS")
        return self

    @property
    def effective_grading_model(self) -> str:
        """Model used for single-shot grading and feedback calls."""
        return self.grading_model or self.gemini_models[0]


# Loaded once, then shared by the CLI and the pipeline factories
@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings object with loaded configuration
    """
    return Settings()
