# jobs/submitter.py
"""
Job submission: validate, de-duplicate, rate-limit, enqueue, return.

Each successful call inserts exactly one pending job and returns without
waiting for it. Every rejection happens before the insert, so a failed call
leaves no job behind.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from api.app.config import get_settings
from jobs.errors import (
    ExtensionInProgress,
    IdempotencyKeyReused,
    PathAlreadyComplete,
    PathNotFound,
    RateLimitExceeded,
)
from jobs.handlers import count_lessons
from jobs.payloads import ExtendPathInput, GeneratePathInput
from jobs.queue import enqueue, find_by_idempotency_key, find_in_flight_extension
from jobs.rate_limiter import CREATE_PATH, EXTEND_PATH, RateLimitDecision, check_and_increment
from models.job import Job, JobType
from models.learning_path import LearningPath
from services.observability import log_event

logger = logging.getLogger(__name__)


@dataclass
class SubmissionResult:
    job: Job
    replayed: bool = False


def system_idempotency_key(job_type: JobType, scope: uuid.UUID) -> str:
    return f"{job_type.value}:{scope}:{uuid.uuid4().hex}"


async def submit_generate_path(
    db: AsyncSession,
    user_id: uuid.UUID,
    request: GeneratePathInput,
    *,
    idempotency_key: str | None = None,
    metadata: dict | None = None,
) -> SubmissionResult:
    input_data = request.to_json()

    replay = await _replay(db, user_id, idempotency_key, JobType.GENERATE_PATH, input_data)
    if replay is not None:
        return replay

    decision = await check_and_increment(db, user_id, CREATE_PATH)
    if not decision.allowed:
        raise _rate_limited(decision, "create {limit} learning paths per hour")

    return await _enqueue(
        db,
        user_id,
        JobType.GENERATE_PATH,
        input_data,
        idempotency_key=idempotency_key,
        scope=user_id,
        metadata={"created_from": "create-path-job", **(metadata or {})},
    )


async def submit_extend_path(
    db: AsyncSession,
    user_id: uuid.UUID,
    path_id: uuid.UUID,
    *,
    idempotency_key: str | None = None,
    metadata: dict | None = None,
) -> SubmissionResult:
    input_data = ExtendPathInput(path_id=path_id).to_json()

    replay = await _replay(db, user_id, idempotency_key, JobType.EXTEND_PATH, input_data)
    if replay is not None:
        return replay

    # ownership: someone else's path looks exactly like a missing one
    path = await db.scalar(
        select(LearningPath).where(
            LearningPath.id == path_id,
            LearningPath.user_id == user_id,
        )
    )
    if path is None:
        raise PathNotFound()

    lesson_count = await count_lessons(db, path.id)
    if lesson_count >= path.total_lessons:
        raise PathAlreadyComplete(lesson_count, path.total_lessons)

    in_flight = await find_in_flight_extension(db, user_id, path.id)
    if in_flight is not None:
        logger.info("Extension for path %s already in flight as job %s", path.id, in_flight.id)
        raise ExtensionInProgress(in_flight.id)

    decision = await check_and_increment(db, user_id, EXTEND_PATH)
    if not decision.allowed:
        raise _rate_limited(decision, "extend paths {limit} times per hour")

    return await _enqueue(
        db,
        user_id,
        JobType.EXTEND_PATH,
        input_data,
        idempotency_key=idempotency_key,
        scope=path.id,
        metadata={
            "created_from": "extend-path-job",
            "current_lesson_count": lesson_count,
            "total_lessons": path.total_lessons,
            **(metadata or {}),
        },
    )


async def _replay(
    db: AsyncSession,
    user_id: uuid.UUID,
    idempotency_key: str | None,
    job_type: JobType,
    input_data: dict,
) -> SubmissionResult | None:
    """Existing job for a caller-supplied key, if this is a resubmission."""
    if not idempotency_key:
        return None

    existing = await find_by_idempotency_key(db, user_id, idempotency_key)
    if existing is None:
        return None
    if existing.job_type != job_type or existing.input_data != input_data:
        raise IdempotencyKeyReused(existing.id)

    logger.info("Idempotent replay of job %s for key %s", existing.id, idempotency_key)
    return SubmissionResult(job=existing, replayed=True)


async def _enqueue(
    db: AsyncSession,
    user_id: uuid.UUID,
    job_type: JobType,
    input_data: dict,
    *,
    idempotency_key: str | None,
    scope: uuid.UUID,
    metadata: dict,
) -> SubmissionResult:
    settings = get_settings()
    key = idempotency_key or system_idempotency_key(job_type, scope)

    try:
        job = await enqueue(
            db,
            user_id,
            job_type,
            input_data,
            idempotency_key=key,
            metadata=metadata,
            max_attempts=settings.job_max_attempts,
        )
    except IntegrityError:
        # a concurrent request with the same key won the insert
        await db.rollback()
        if idempotency_key is None:
            raise
        existing = await find_by_idempotency_key(db, user_id, idempotency_key)
        if existing is None:
            raise
        return SubmissionResult(job=existing, replayed=True)

    await log_event(
        db,
        "job_submitted",
        "info",
        source="api",
        job_id=job.id,
        metadata={"job_type": job_type.value, "user_id": str(user_id)},
    )
    return SubmissionResult(job=job)


def _rate_limited(decision: RateLimitDecision, allowance: str) -> RateLimitExceeded:
    minutes = decision.minutes_remaining
    return RateLimitExceeded(
        f"Rate limit exceeded. You can {allowance.format(limit=decision.limit)}. "
        f"Try again in {minutes} minutes.",
        retry_after_seconds=decision.retry_after_seconds,
        minutes_remaining=minutes,
    )
