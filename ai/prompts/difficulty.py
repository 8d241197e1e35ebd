# ai/prompts/difficulty.py
"""Overlay notes per difficulty level."""

DIFFICULTY_NOTES: dict[str, str] = {
    "beginner": (
        "Assume no prior knowledge and define every new term. "
        "Keep quizzes to recall and recognition."
    ),
    "intermediate": (
        "Assume the fundamentals are known. Connect ideas across topics "
        "and include quizzes that require applying a concept."
    ),
    "advanced": (
        "Assume solid working knowledge and cover edge cases and trade-offs. "
        "Quizzes should require analysis rather than recall."
    ),
}
