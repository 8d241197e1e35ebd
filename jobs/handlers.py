# jobs/handlers.py
"""
Job handlers for each job type.
Hardened for:
- idempotency (retried jobs resume, existing lessons are never regenerated)
- short DB transactions (commit before every generator call)
- per-lesson failures that never sink the job
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ai.prompt_builder import LessonPromptContext, build_lesson_prompt, build_path_prompt
from ai.schemas import parse_lesson_content, parse_path_outline
from api.app.config import get_settings
from jobs.errors import HandlerError
from jobs.payloads import ExtendPathInput, ExtendPathResult, GeneratePathInput, GeneratePathResult
from models.job import Job, JobType
from models.learning_path import LearningPath
from models.lesson import Lesson
from services.content_generator import generate_json

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────
# helpers
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class PathSnapshot:
    """Plain copy of a path row, safe to use after a session rollback."""

    id: uuid.UUID
    title: str
    difficulty: str
    topics: list[dict]
    total_lessons: int

    @classmethod
    def of(cls, path: LearningPath) -> PathSnapshot:
        return cls(
            id=path.id,
            title=path.title,
            difficulty=path.difficulty,
            topics=list(path.topics or []),
            total_lessons=path.total_lessons,
        )


def select_topic(topics: list[dict], lesson_number: int) -> tuple[str, str]:
    """
    Round-robin (topic, subtopic) for a 1-based lesson number.

    Lesson n walks topics first, then advances the subtopic index once per
    full pass over the topics.
    """
    if not topics:
        raise HandlerError("Learning path has no topics")

    index = lesson_number - 1
    topic = topics[index % len(topics)]
    title = topic.get("title") or "General"
    subtopics = topic.get("subtopics") or []
    if not subtopics:
        return title, title
    return title, subtopics[(index // len(topics)) % len(subtopics)]


async def existing_lesson_numbers(db: AsyncSession, path_id: uuid.UUID) -> set[int]:
    stmt = select(Lesson.lesson_number).where(Lesson.learning_path_id == path_id)
    return set((await db.execute(stmt)).scalars().all())


async def count_lessons(db: AsyncSession, path_id: uuid.UUID) -> int:
    stmt = select(func.count()).select_from(Lesson).where(Lesson.learning_path_id == path_id)
    return (await db.execute(stmt)).scalar_one()


def next_lesson_numbers(existing: set[int], total_lessons: int, batch: int) -> list[int]:
    """Lowest missing ordinals in 1..total_lessons, at most ``batch`` of them."""
    missing = (n for n in range(1, total_lessons + 1) if n not in existing)
    return [n for _, n in zip(range(batch), missing)]


async def generate_lessons(
    db: AsyncSession,
    path: PathSnapshot,
    lesson_numbers: Iterable[int],
) -> list[int]:
    """
    Generate and persist lessons one at a time, in order.

    A lesson that fails to generate, validate, or insert is logged and skipped.
    Returns the lesson numbers actually created.
    """
    created: list[int] = []

    for lesson_number in lesson_numbers:
        topic_title, subtopic = select_topic(path.topics, lesson_number)

        # second look right before generating: another run may have written it
        exists = await db.scalar(
            select(Lesson.id).where(
                Lesson.learning_path_id == path.id,
                Lesson.lesson_number == lesson_number,
            )
        )
        if exists is not None:
            logger.info("Lesson %d already exists for path %s, skipping", lesson_number, path.id)
            continue

        # no open transaction while waiting on the generator
        await db.commit()

        logger.info("Generating lesson %d: %s - %s", lesson_number, topic_title, subtopic)
        try:
            data = await generate_json(
                build_lesson_prompt(
                    LessonPromptContext(
                        lesson_number=lesson_number,
                        topic_title=topic_title,
                        subtopic=subtopic,
                        path_title=path.title,
                        difficulty=path.difficulty,
                    )
                )
            )
            content = parse_lesson_content(data)
        except Exception as exc:
            logger.error("Lesson %d generation failed for path %s: %s", lesson_number, path.id, exc)
            continue

        db.add(
            Lesson(
                learning_path_id=path.id,
                lesson_number=lesson_number,
                title=f"{topic_title}: {subtopic}",
                topic=subtopic,
                explanations=content.explanations_json(),
                quizzes=content.quizzes_json(),
            )
        )
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.info("Lesson %d for path %s was created concurrently, skipping", lesson_number, path.id)
            continue

        logger.info("Lesson %d created for path %s", lesson_number, path.id)
        created.append(lesson_number)

    return created


# ─────────────────────────────────────────────
# handlers
# ─────────────────────────────────────────────

async def handle_generate_path(
    db: AsyncSession,
    job: Job,
    payload: GeneratePathInput,
) -> GeneratePathResult:
    settings = get_settings()
    job_id, user_id = job.id, job.user_id

    logger.info("Processing generate_path job %s", job_id)

    # ── Idempotency: a previous attempt already saved the path ──
    path = await db.scalar(select(LearningPath).where(LearningPath.source_job_id == job_id))
    if path is not None:
        logger.info("Job %s resuming with existing learning path %s", job_id, path.id)
        snapshot = PathSnapshot.of(path)
    else:
        prompt = build_path_prompt(
            payload.prompt,
            payload.difficulty,
            payload.file_contents,
            max_file_chars=settings.file_context_chars,
        )

        await db.commit()
        # failures here fail the attempt: there is nothing to persist without an outline
        outline = parse_path_outline(await generate_json(prompt))

        path = LearningPath(
            user_id=user_id,
            title=outline.title,
            description=outline.description,
            difficulty=payload.difficulty,
            topics=[topic.model_dump() for topic in outline.topics],
            total_lessons=outline.total_lessons,
            current_lesson=1,
            source_job_id=job_id,
        )
        db.add(path)
        await db.flush()
        snapshot = PathSnapshot.of(path)
        await db.commit()
        logger.info("Learning path created: %s (%d lessons planned)", snapshot.id, snapshot.total_lessons)

    first_batch = range(1, min(settings.lessons_per_batch, snapshot.total_lessons) + 1)
    created = await generate_lessons(db, snapshot, first_batch)

    total_created = await count_lessons(db, snapshot.id)
    logger.info(
        "generate_path job %s done: path=%s lessons=%d (this attempt %d)",
        job_id,
        snapshot.id,
        total_created,
        len(created),
    )
    return GeneratePathResult(learning_path_id=snapshot.id, lessons_created=total_created)


async def handle_extend_path(
    db: AsyncSession,
    job: Job,
    payload: ExtendPathInput,
) -> ExtendPathResult:
    settings = get_settings()
    job_id, user_id = job.id, job.user_id

    logger.info("Processing extend_path job %s for path %s", job_id, payload.path_id)

    path = await db.scalar(
        select(LearningPath).where(
            LearningPath.id == payload.path_id,
            LearningPath.user_id == user_id,
        )
    )
    if path is None:
        raise HandlerError("Learning path not found")
    snapshot = PathSnapshot.of(path)

    existing = await existing_lesson_numbers(db, snapshot.id)
    if len(existing) >= snapshot.total_lessons:
        raise HandlerError("Path already at maximum lessons")

    lesson_numbers = next_lesson_numbers(existing, snapshot.total_lessons, settings.lessons_per_batch)
    logger.info("Generating lessons %s for path %s", lesson_numbers, snapshot.id)

    created = await generate_lessons(db, snapshot, lesson_numbers)
    return ExtendPathResult(learning_path_id=snapshot.id, lesson_numbers=created)


Handler = Callable[[AsyncSession, Job, object], Awaitable[object]]

HANDLERS: dict[JobType, Handler] = {
    JobType.GENERATE_PATH: handle_generate_path,
    JobType.EXTEND_PATH: handle_extend_path,
}
