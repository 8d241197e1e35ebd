# models/learning_path.py
from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, JSONType, TimestampMixin, UUIDPrimaryKey


class LearningPath(Base, UUIDPrimaryKey, TimestampMixin):
    __tablename__ = "learning_paths"

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    difficulty: Mapped[str] = mapped_column(String(32), nullable=False)  # beginner | intermediate | advanced

    # [{"title": "...", "subtopics": ["...", ...]}, ...]
    topics: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    total_lessons: Mapped[int] = mapped_column(Integer, nullable=False)
    current_lesson: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # generate_path job that created this row; lets a retried job resume instead of duplicating
    source_job_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, unique=True)

    lessons = relationship(
        "Lesson",
        back_populates="learning_path",
        order_by="Lesson.lesson_number",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
