# api/app/schemas/learning_paths.py
from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel


class LessonDetail(BaseModel):
    id: uuid.UUID
    lesson_number: int
    title: str
    topic: str
    explanations: list
    quizzes: list

    class Config:
        from_attributes = True


class LearningPathDetail(BaseModel):
    id: uuid.UUID
    title: str
    description: str | None = None
    difficulty: str
    topics: list
    total_lessons: int
    current_lesson: int
    created_at: datetime
    lessons: list[LessonDetail] = []

    class Config:
        from_attributes = True
