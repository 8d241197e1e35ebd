# models/lesson.py
from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, JSONType, TimestampMixin, UUIDPrimaryKey


class Lesson(Base, UUIDPrimaryKey, TimestampMixin):
    __tablename__ = "lessons"
    __table_args__ = (
        UniqueConstraint("learning_path_id", "lesson_number", name="uq_lessons_path_number"),
    )

    learning_path_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("learning_paths.id", ondelete="CASCADE"), nullable=False
    )
    lesson_number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    topic: Mapped[str] = mapped_column(String(512), nullable=False)

    # [{"title", "content"}] / [{"question", "options", "correctAnswer"}]
    explanations: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    quizzes: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)

    learning_path = relationship("LearningPath", back_populates="lessons")
