"""Prompt Builder - Turns a quiz request into generation instructions."""

import random

from medquiz.models.quiz import DIFFICULTY_POINTS, QuestionStyle, QuizMode, QuizRequest

STYLE_GUIDANCE = {
    QuestionStyle.CONCEPTUAL: "Focus on underlying principles, mechanisms and relationships",
    QuestionStyle.FACTUAL_RECALL: "Focus on specific facts, definitions and classifications",
    QuestionStyle.CASE_BASED: "Create short clinical vignettes with diagnostic or treatment questions",
}

MULTIPLE_CHOICE_EXAMPLE = """{
  "questions": [
    {
      "id": "q1",
      "question": "What is the normal resting heart rate for healthy adults?",
      "options": [
        "40-60 beats per minute",
        "60-100 beats per minute",
        "100-120 beats per minute",
        "120-140 beats per minute"
      ],
      "correctAnswer": 1,
      "explanation": "The normal resting heart rate for healthy adults ranges from 60 to 100 beats per minute. Rates below 60 may indicate bradycardia, while rates above 100 may indicate tachycardia.",
      "difficulty": "Beginner",
      "points": 10
    }
  ]
}"""


def unique_topic(topic: str, rng: random.Random | None = None) -> str:
    """
    Append a random suffix to a topic.

    Identical prompts can be answered from the API's response cache, so
    repeated quizzes on the same topic would get the same questions.

    Args:
        topic: Topic as entered by the user
        rng: Random source (seed it for reproducible prompts)

    Returns:
        Topic with a random numeric suffix
    """
    rng = rng or random.Random()
    return f"{topic} - {rng.random()}"


def _context_lines(request: QuizRequest, topic: str) -> str:
    lines = [f"- Medical Topic: {topic}"]
    if request.preparation_context:
        lines.append(f"- User's Preparation Goal: {request.preparation_context}")
    lines.append(f"- Preferred Question Style: {request.question_style.value}")
    return "\n".join(lines)


def _relevance_line(request: QuizRequest) -> str:
    if request.preparation_context:
        return (
            "The questions should be highly relevant for a medical student preparing for "
            f'"{request.preparation_context}".'
        )
    return "The questions should be of a general nature for the selected topic."


def _style_line(request: QuizRequest) -> str:
    return (
        f'Tailor the questions to match the requested style: "{request.question_style.value}". '
        f"{STYLE_GUIDANCE[request.question_style]}."
    )


def build_multiple_choice_prompt(request: QuizRequest, topic: str | None = None) -> str:
    """
    Build the generation prompt for a multiple choice quiz.

    Args:
        request: Quiz settings
        topic: Topic text to embed (defaults to request.topic)

    Returns:
        Prompt string
    """
    topic = topic or request.topic
    count = request.question_count
    bands = "\n".join(
        f"- {difficulty.value} ({points} points): {description}"
        for (difficulty, points), description in zip(
            DIFFICULTY_POINTS.items(),
            (
                "Basic concepts, common conditions, standard treatments",
                "More complex relationships, differential diagnosis, complications",
                "Rare conditions, complex cases, latest research findings",
            ),
        )
    )

    return f"""You are an expert medical educator creating a multiple choice quiz for medical students.

Generate exactly {count} challenging multiple choice questions based on these criteria:

{_context_lines(request, topic)}

IMPORTANT INSTRUCTIONS:
1. Each question must have exactly 4 multiple choice options
2. Only ONE option should be correct
3. The other 3 options should be plausible but incorrect (good distractors)
4. Randomize the position of the correct answer across questions
5. Include clear, concise explanations for why the correct answer is right
6. Vary difficulty levels appropriately based on the topic
7. Make questions clinically relevant and educational

{_relevance_line(request)}

{_style_line(request)}

DIFFICULTY GUIDELINES:
{bands}

Return ONLY a JSON object in this exact format:
{MULTIPLE_CHOICE_EXAMPLE}

Generate {count} unique, educational, and clinically relevant questions now:"""


def build_open_ended_prompt(request: QuizRequest, topic: str | None = None) -> str:
    """Build the generation prompt for an open-ended quiz."""
    topic = topic or request.topic
    count = request.question_count

    return f"""You are an expert medical educator creating a personalized quiz.

Generate a set of {count} challenging study questions based on the following criteria:

{_context_lines(request, topic)}

{_relevance_line(request)}
{_style_line(request)} Vary how each question is framed so that no two questions follow the same template.

Each question must be answerable in a short paragraph of free text. Do not include answer options or an answer key.

Return ONLY a JSON object in this exact format:
{{"questions": ["First question text", "Second question text"]}}"""


def build_prompt(
    request: QuizRequest,
    *,
    cache_bust: bool = True,
    rng: random.Random | None = None,
) -> str:
    """
    Build the prompt for a request in either quiz mode.

    Args:
        request: Quiz settings
        cache_bust: Append a random suffix to the topic (see unique_topic)
        rng: Random source for the suffix

    Returns:
        Prompt string
    """
    topic = unique_topic(request.topic, rng) if cache_bust else request.topic
    if request.mode == QuizMode.MULTIPLE_CHOICE:
        return build_multiple_choice_prompt(request, topic)
    return build_open_ended_prompt(request, topic)
