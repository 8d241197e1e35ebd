# jobs/queue.py
"""
Job store: the only code that moves a job between statuses.

Every transition is a single conditional UPDATE keyed on the status the
caller expects (and, once claimed, on the attempt number), so overlapping
workers cannot both win the same job and terminal rows are never rewritten.
"""
from __future__ import annotations

import logging
import uuid
from datetime import timedelta

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models.base import utcnow
from models.job import IN_FLIGHT_STATUSES, Job, JobStatus, JobType

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BATCH_SIZE = 10


async def enqueue(
    db: AsyncSession,
    user_id: uuid.UUID,
    job_type: JobType,
    input_data: dict,
    *,
    idempotency_key: str | None = None,
    metadata: dict | None = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> Job:
    job = Job(
        user_id=user_id,
        job_type=job_type,
        status=JobStatus.PENDING,
        input_data=input_data,
        idempotency_key=idempotency_key,
        attempts=0,
        max_attempts=max_attempts,
        metadata_=metadata,
    )
    db.add(job)
    await db.flush()
    logger.info("Enqueued job %s [%s] user=%s", job.id, job.job_type.value, user_id)
    return job


async def get_job(
    db: AsyncSession,
    job_id: uuid.UUID,
    user_id: uuid.UUID | None = None,
) -> Job | None:
    stmt = select(Job).where(Job.id == job_id)
    if user_id is not None:
        stmt = stmt.where(Job.user_id == user_id)
    result = await db.execute(stmt.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def find_by_idempotency_key(
    db: AsyncSession,
    user_id: uuid.UUID,
    idempotency_key: str,
) -> Job | None:
    stmt = select(Job).where(
        Job.user_id == user_id,
        Job.idempotency_key == idempotency_key,
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def find_in_flight_extension(
    db: AsyncSession,
    user_id: uuid.UUID,
    path_id: uuid.UUID,
) -> Job | None:
    """Oldest pending/processing extend_path job targeting ``path_id``."""
    stmt = (
        select(Job)
        .where(
            Job.user_id == user_id,
            Job.job_type == JobType.EXTEND_PATH,
            Job.status.in_(IN_FLIGHT_STATUSES),
            Job.input_data["pathId"].as_string() == str(path_id),
        )
        .order_by(Job.created_at.asc())
        .limit(1)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def fetch_eligible(
    db: AsyncSession,
    limit: int = DEFAULT_BATCH_SIZE,
) -> list[Job]:
    """Pending jobs with attempts left, oldest first."""
    now = utcnow()
    stmt = (
        select(Job)
        .where(
            Job.status == JobStatus.PENDING,
            Job.attempts < Job.max_attempts,
            or_(Job.run_after.is_(None), Job.run_after <= now),
        )
        .order_by(Job.created_at.asc(), Job.id.asc())
        .limit(limit)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def claim(db: AsyncSession, job_id: uuid.UUID) -> Job | None:
    """
    Atomically move a pending job to processing.

    Returns the claimed job, or None when another worker got there first
    (or the job is no longer eligible).
    """
    now = utcnow()
    stmt = (
        update(Job)
        .where(
            Job.id == job_id,
            Job.status == JobStatus.PENDING,
            Job.attempts < Job.max_attempts,
        )
        .values(
            status=JobStatus.PROCESSING,
            attempts=Job.attempts + 1,
            started_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount != 1:
        logger.info("Job %s already claimed or no longer eligible", job_id)
        return None

    job = await get_job(db, job_id)
    logger.info(
        "Claimed job %s [%s] attempt %d/%d",
        job_id,
        job.job_type.value,
        job.attempts,
        job.max_attempts,
    )
    return job


async def complete_job(
    db: AsyncSession,
    job_id: uuid.UUID,
    *,
    attempt: int,
    result: dict,
) -> bool:
    stmt = (
        update(Job)
        .where(
            Job.id == job_id,
            Job.status == JobStatus.PROCESSING,
            Job.attempts == attempt,
        )
        .values(
            status=JobStatus.COMPLETED,
            completed_at=utcnow(),
            result_data=result,
            error_message=None,
        )
        .execution_options(synchronize_session=False)
    )
    outcome = await db.execute(stmt)
    if outcome.rowcount != 1:
        logger.warning("Job %s completion lost: no longer processing attempt %d", job_id, attempt)
        return False

    logger.info("Job %s completed", job_id)
    return True


async def fail_job(
    db: AsyncSession,
    job_id: uuid.UUID,
    *,
    attempt: int,
    max_attempts: int,
    error: str,
    retry_backoff_seconds: float = 0,
) -> JobStatus | None:
    """
    Re-queue the job if it has attempts left, otherwise mark it failed.

    Returns the new status, or None if the job had already moved on.
    No sleeping here; backoff only pushes ``run_after`` forward.
    """
    now = utcnow()

    if attempt < max_attempts:
        new_status = JobStatus.PENDING
        values = {"status": new_status, "error_message": error}
        if retry_backoff_seconds > 0:
            delay = retry_backoff_seconds * 2 ** (attempt - 1)
            values["run_after"] = now + timedelta(seconds=delay)
    else:
        new_status = JobStatus.FAILED
        values = {"status": new_status, "error_message": error, "completed_at": now}

    stmt = (
        update(Job)
        .where(
            Job.id == job_id,
            Job.status == JobStatus.PROCESSING,
            Job.attempts == attempt,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    outcome = await db.execute(stmt)
    if outcome.rowcount != 1:
        logger.warning("Job %s failure not recorded: no longer processing attempt %d", job_id, attempt)
        return None

    if new_status == JobStatus.PENDING:
        logger.warning("Job %s retry %d/%d: %s", job_id, attempt, max_attempts, error)
    else:
        logger.error("Job %s permanently failed after %d attempts: %s", job_id, attempt, error)
    return new_status


async def cancel_job(
    db: AsyncSession,
    job_id: uuid.UUID,
    user_id: uuid.UUID,
) -> bool:
    """pending -> cancelled. Anything already picked up keeps running."""
    stmt = (
        update(Job)
        .where(
            Job.id == job_id,
            Job.user_id == user_id,
            Job.status == JobStatus.PENDING,
        )
        .values(status=JobStatus.CANCELLED, completed_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    outcome = await db.execute(stmt)
    cancelled = outcome.rowcount == 1
    if cancelled:
        logger.info("Job %s cancelled by user %s", job_id, user_id)
    return cancelled


async def reclaim_stale_jobs(db: AsyncSession, lease: timedelta) -> int:
    """
    Hand back jobs stuck in processing longer than ``lease``.

    A job with attempts left goes back to pending; an exhausted one fails.
    Returns the number of jobs touched.
    """
    now = utcnow()
    cutoff = now - lease
    stale = (
        Job.status == JobStatus.PROCESSING,
        Job.started_at.is_not(None),
        Job.started_at < cutoff,
    )

    exhausted = await db.execute(
        update(Job)
        .where(*stale, Job.attempts >= Job.max_attempts)
        .values(
            status=JobStatus.FAILED,
            error_message="Job lease expired with no attempts left",
            completed_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    requeued = await db.execute(
        update(Job)
        .where(*stale, Job.attempts < Job.max_attempts)
        .values(
            status=JobStatus.PENDING,
            error_message="Job lease expired; re-queued",
        )
        .execution_options(synchronize_session=False)
    )

    total = exhausted.rowcount + requeued.rowcount
    if total:
        logger.warning(
            "Reclaimed %d stale jobs (%d re-queued, %d failed) older than %s",
            total,
            requeued.rowcount,
            exhausted.rowcount,
            lease,
        )
    return total
