# ai/schemas.py
"""
Shapes the generator is expected to return, validated before anything is
persisted.
"""
from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, ValidationError, model_validator

from services.content_generator import GeneratorOutputError

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class _GeneratorModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class TopicOutline(_GeneratorModel):
    title: NonEmptyStr
    subtopics: list[NonEmptyStr] = Field(default_factory=list)


class PathOutline(_GeneratorModel):
    title: NonEmptyStr
    description: str | None = None
    topics: list[TopicOutline] = Field(..., min_length=1)
    total_lessons: int = Field(..., gt=0)


class Explanation(_GeneratorModel):
    title: NonEmptyStr
    content: NonEmptyStr


class Quiz(_GeneratorModel):
    question: NonEmptyStr
    options: list[NonEmptyStr] = Field(..., min_length=2)
    correct_answer: NonEmptyStr = Field(..., alias="correctAnswer")

    @model_validator(mode="after")
    def _answer_is_an_option(self) -> "Quiz":
        if self.correct_answer not in self.options:
            raise ValueError("correctAnswer must be one of the options")
        return self


class LessonContent(_GeneratorModel):
    explanations: list[Explanation] = Field(..., min_length=1)
    quizzes: list[Quiz] = Field(..., min_length=1)

    def explanations_json(self) -> list[dict]:
        return [e.model_dump() for e in self.explanations]

    def quizzes_json(self) -> list[dict]:
        return [q.model_dump(by_alias=True) for q in self.quizzes]


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(part) for part in err["loc"]) or "response"
    return f"{loc}: {err['msg']}"


def parse_path_outline(data: dict[str, Any]) -> PathOutline:
    try:
        return PathOutline.model_validate(data)
    except ValidationError as exc:
        raise GeneratorOutputError(f"Invalid learning path structure from generator ({_first_error(exc)})") from exc


def parse_lesson_content(data: dict[str, Any]) -> LessonContent:
    try:
        return LessonContent.model_validate(data)
    except ValidationError as exc:
        raise GeneratorOutputError(f"Invalid lesson from generator ({_first_error(exc)})") from exc
