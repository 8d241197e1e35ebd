# jobs/payloads.py
"""
Typed job payloads, one variant per job type.

``input_data``/``result_data`` are stored as JSON; they are decoded into these
models at the handler boundary so the worker never passes raw dicts around.
"""
from __future__ import annotations

import uuid
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from models.job import JobType

Difficulty = Literal["beginner", "intermediate", "advanced"]

PROMPT_MIN_CHARS = 10
PROMPT_MAX_CHARS = 1000
FILE_MAX_CHARS = 5_000_000


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class GeneratePathInput(_Payload):
    prompt: Annotated[
        str,
        StringConstraints(strip_whitespace=True, min_length=PROMPT_MIN_CHARS, max_length=PROMPT_MAX_CHARS),
    ]
    difficulty: Difficulty
    file_contents: str | None = Field(default=None, alias="fileContents", max_length=FILE_MAX_CHARS)
    file_name: str | None = Field(default=None, alias="fileName")
    file_size: int | None = Field(default=None, alias="fileSize")
    mime_type: str | None = Field(default=None, alias="mimeType")


class ExtendPathInput(_Payload):
    path_id: uuid.UUID = Field(..., alias="pathId")


class GeneratePathResult(_Payload):
    learning_path_id: uuid.UUID = Field(..., alias="learningPathId")
    lessons_created: int = Field(..., alias="lessonsCreated")


class ExtendPathResult(_Payload):
    learning_path_id: uuid.UUID = Field(..., alias="learningPathId")
    lesson_numbers: list[int] = Field(default_factory=list, alias="lessonNumbers")


JobInput = Union[GeneratePathInput, ExtendPathInput]
JobResult = Union[GeneratePathResult, ExtendPathResult]

_INPUT_TYPES: dict[JobType, type[_Payload]] = {
    JobType.GENERATE_PATH: GeneratePathInput,
    JobType.EXTEND_PATH: ExtendPathInput,
}


def decode_input(job_type: JobType | str, data: dict | None) -> JobInput:
    """Decode stored ``input_data`` for ``job_type``; raises ValueError on unknown types."""
    try:
        model = _INPUT_TYPES[JobType(job_type)]
    except (KeyError, ValueError):
        raise ValueError(f"Unknown job type: {job_type}") from None
    return model.model_validate(data or {})
