# tests/test_content_generator.py
"""
Tests for generator output parsing and validation (no network calls).
"""
from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ai.schemas import parse_lesson_content, parse_path_outline
from services.content_generator import (
    GeneratorOutputError,
    chat_completion,
    generate_json,
    parse_generator_content,
    strip_code_fences,
)
from tests.factories import LESSON_CONTENT, OUTLINE


@pytest.mark.parametrize(
    "raw",
    [
        '{"a": 1}',
        '```json\n{"a": 1}\n```',
        '```\n{"a": 1}\n```',
        '  ```JSON {"a": 1}```  ',
    ],
)
def test_strip_code_fences(raw):
    assert strip_code_fences(raw) == '{"a": 1}'


def test_parse_generator_content_returns_object():
    assert parse_generator_content('```json\n{"title": "x"}\n```') == {"title": "x"}


@pytest.mark.parametrize("raw", ["", None, "Here you go!", "[1, 2, 3]", "```json\n```"])
def test_parse_generator_content_rejects_non_objects(raw):
    with pytest.raises(GeneratorOutputError):
        parse_generator_content(raw)


async def test_generate_json_sends_single_user_message():
    chat = AsyncMock(return_value='{"ok": true}')
    with patch("services.content_generator.chat_completion", chat):
        assert await generate_json("make a path") == {"ok": True}
    chat.assert_awaited_once_with([{"role": "user", "content": "make a path"}])


async def test_chat_completion_takes_first_choice():
    response = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content='{"a": 1}'))])
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=response)

    with patch("services.content_generator.AsyncOpenAI", return_value=client):
        assert await chat_completion([{"role": "user", "content": "hi"}]) == '{"a": 1}'

    kwargs = client.chat.completions.create.await_args.kwargs
    assert kwargs["model"] == "google/gemini-2.5-flash"


async def test_chat_completion_without_choices():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(choices=[]))

    with patch("services.content_generator.AsyncOpenAI", return_value=client):
        with pytest.raises(GeneratorOutputError):
            await chat_completion([{"role": "user", "content": "hi"}])


# ─────────────────────────────────────────────
# shape validation
# ─────────────────────────────────────────────

def test_parse_path_outline():
    outline = parse_path_outline(OUTLINE)
    assert outline.title == "Python Basics"
    assert outline.total_lessons == 10
    assert outline.topics[1].subtopics == ["for", "while"]


@pytest.mark.parametrize(
    "changes",
    [
        {"topics": []},
        {"total_lessons": 0},
        {"title": "  "},
        {"topics": "Variables"},
    ],
)
def test_parse_path_outline_rejects(changes):
    with pytest.raises(GeneratorOutputError, match="Invalid learning path structure"):
        parse_path_outline({**OUTLINE, **changes})


def test_parse_lesson_content_keeps_camel_case_answer():
    lesson = parse_lesson_content(LESSON_CONTENT)
    assert lesson.quizzes_json() == LESSON_CONTENT["quizzes"]
    assert lesson.explanations_json() == LESSON_CONTENT["explanations"]


@pytest.mark.parametrize(
    "quiz",
    [
        {"question": "q", "options": ["a", "b"], "correctAnswer": "c"},
        {"question": "q", "options": ["a"], "correctAnswer": "a"},
        {"question": "q", "options": ["a", "b"]},
    ],
)
def test_parse_lesson_content_rejects_bad_quiz(quiz):
    with pytest.raises(GeneratorOutputError, match="Invalid lesson"):
        parse_lesson_content({**LESSON_CONTENT, "quizzes": [quiz]})


def test_parse_lesson_content_requires_explanations():
    with pytest.raises(GeneratorOutputError):
        parse_lesson_content({"explanations": [], "quizzes": LESSON_CONTENT["quizzes"]})
