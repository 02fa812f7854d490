"""Response Extractor - Pulls validated question data out of model text."""

import json
import logging
from enum import Enum
from typing import Any, Iterator

from pydantic import ValidationError

from medquiz.models.quiz import MultipleChoiceQuestion, MultipleChoiceQuestionList, OpenEndedQuestionList

logger = logging.getLogger(__name__)


class BatchPolicy(str, Enum):
    """What to do when only some generated questions are valid."""

    REJECT_ALL = "reject_all"
    KEEP_VALID = "keep_valid"


def _balanced_objects(text: str) -> Iterator[str]:
    """
    Yield every top-level balanced {...} span in text, in order.

    Braces inside JSON string literals are ignored. An unbalanced opening
    brace restarts the scan at the next brace.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        end = -1
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    end = i
                    break
        if end == -1:
            start = text.find("{", start + 1)
            continue
        yield text[start : end + 1]
        start = text.find("{", end + 1)


def _greedy_slice(text: str) -> str | None:
    """First '{' through last '}' of the whole string."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


def _loads(candidate: str) -> Any:
    try:
        return json.loads(candidate)
    except ValueError:
        return None


def find_json_object(text: str | None, required_field: str | None = None) -> dict[str, Any] | None:
    """
    Locate a JSON object embedded in free text.

    Balanced candidates are tried first so that stray braces in the
    surrounding prose do not break extraction. If none qualifies, the
    first-brace-to-last-brace slice is tried as a last resort.

    Args:
        text: Raw model output
        required_field: Key the object must contain to be accepted

    Returns:
        The parsed object, or None if nothing suitable was found
    """
    if not text:
        return None

    def accepts(obj: Any) -> bool:
        return isinstance(obj, dict) and (required_field is None or required_field in obj)

    for candidate in _balanced_objects(text):
        obj = _loads(candidate)
        if accepts(obj):
            return obj

    greedy = _greedy_slice(text)
    if greedy is not None:
        obj = _loads(greedy)
        if accepts(obj):
            return obj
    return None


def _question_items(text: str | None) -> list[Any] | None:
    data = find_json_object(text, required_field="questions")
    if data is None:
        logger.error("No JSON object with a 'questions' field found in response")
        if text:
            logger.debug("Raw response (first 500 chars): %s", text[:500])
        return None
    items = data["questions"]
    if not isinstance(items, list):
        logger.error("'questions' is %s, expected a list", type(items).__name__)
        return None
    return items


def extract_multiple_choice_questions(
    text: str | None, policy: BatchPolicy = BatchPolicy.REJECT_ALL
) -> list[MultipleChoiceQuestion]:
    """
    Parse and validate multiple choice questions from model output.

    Args:
        text: Raw model output
        policy: REJECT_ALL empties the batch on any invalid item,
            KEEP_VALID drops invalid items

    Returns:
        Validated questions in their original order, or [] on failure
    """
    items = _question_items(text)
    if items is None:
        return []

    if policy == BatchPolicy.REJECT_ALL:
        try:
            questions = MultipleChoiceQuestionList(questions=items).questions
        except ValidationError as e:
            logger.error("Malformed question in batch, rejecting all: %s", e)
            return []
    else:
        questions = []
        for i, item in enumerate(items):
            try:
                questions.append(MultipleChoiceQuestion.model_validate(item))
            except ValidationError as e:
                logger.warning("Dropping malformed question %d: %s", i, e)

    _dedupe_ids(questions)
    return questions


def extract_open_ended_questions(
    text: str | None, policy: BatchPolicy = BatchPolicy.REJECT_ALL
) -> list[str]:
    """Parse open-ended question strings from model output."""
    items = _question_items(text)
    if items is None:
        return []

    if policy == BatchPolicy.REJECT_ALL:
        try:
            return OpenEndedQuestionList(questions=items).questions
        except ValidationError as e:
            logger.error("Malformed question in batch, rejecting all: %s", e)
            return []

    questions = []
    for i, item in enumerate(items):
        if isinstance(item, str) and item.strip():
            questions.append(item.strip())
        else:
            logger.warning("Dropping malformed question %d", i)
    return questions


def _dedupe_ids(questions: list[MultipleChoiceQuestion]) -> None:
    """Make question ids unique within a batch (models often repeat 'q1')."""
    seen: set[str] = set()
    for i, question in enumerate(questions, start=1):
        base, suffix = question.id, i
        while question.id in seen:
            question.id = f"{base}-{suffix}"
            suffix += 1
        seen.add(question.id)
