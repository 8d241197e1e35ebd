# ai/prompt_builder.py
"""
Assembles generator prompts for path outlines and individual lessons.
"""
from __future__ import annotations

from dataclasses import dataclass

from ai.prompts import DIFFICULTY_NOTES, FILE_CONTEXT, LESSON, PATH_OUTLINE

MIN_TOTAL_LESSONS = 10
DEFAULT_FILE_CONTEXT_CHARS = 3000


@dataclass
class LessonPromptContext:
    lesson_number: int
    topic_title: str
    subtopic: str
    path_title: str
    difficulty: str
    explanation_count: int = 10
    quiz_count: int = 10


def build_path_prompt(
    prompt: str,
    difficulty: str,
    file_contents: str | None = None,
    max_file_chars: int = DEFAULT_FILE_CONTEXT_CHARS,
) -> str:
    """Outline prompt; an attached document is cut to its first ``max_file_chars`` characters."""
    outline = PATH_OUTLINE.format(
        prompt=prompt,
        difficulty=difficulty,
        difficulty_note=DIFFICULTY_NOTES.get(difficulty, ""),
        min_lessons=MIN_TOTAL_LESSONS,
    )
    if not file_contents:
        return outline
    return FILE_CONTEXT.format(file_excerpt=file_contents[:max_file_chars]) + outline


def build_lesson_prompt(ctx: LessonPromptContext) -> str:
    return LESSON.format(
        lesson_number=ctx.lesson_number,
        subtopic=ctx.subtopic,
        topic_title=ctx.topic_title,
        path_title=ctx.path_title,
        difficulty=ctx.difficulty,
        difficulty_note=DIFFICULTY_NOTES.get(ctx.difficulty, ""),
        explanation_count=ctx.explanation_count,
        quiz_count=ctx.quiz_count,
    )
