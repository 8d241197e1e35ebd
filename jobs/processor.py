# jobs/processor.py
"""
One worker cycle: claim eligible jobs, run their handlers, record outcomes.

The cycle never schedules itself. Whatever invokes ``run_worker_cycle`` (the
worker process loop, the HTTP trigger, a test) owns the cadence.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.app.config import Settings, get_settings
from db.session import get_session_factory
from jobs.handlers import HANDLERS
from jobs.payloads import decode_input
from jobs.queue import claim, complete_job, fail_job, fetch_eligible, reclaim_stale_jobs
from models.job import JobStatus
from services.observability import log_event

logger = logging.getLogger(__name__)


@dataclass
class JobOutcome:
    job_id: uuid.UUID
    status: JobStatus
    error: str | None = None
    will_retry: bool | None = None

    def to_json(self) -> dict:
        data: dict = {"jobId": str(self.job_id), "status": self.status.value}
        if self.error is not None:
            data["error"] = self.error
        if self.will_retry is not None:
            data["willRetry"] = self.will_retry
        return data


@dataclass
class WorkerCycleResult:
    processed: int = 0
    results: list[JobOutcome] = field(default_factory=list)
    reclaimed: int = 0

    def to_json(self) -> dict:
        return {
            "processed": self.processed,
            "results": [outcome.to_json() for outcome in self.results],
        }


async def run_worker_cycle(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    settings: Settings | None = None,
) -> WorkerCycleResult:
    """
    Process up to ``worker_batch_size`` pending jobs, oldest first.

    A job that fails never stops the batch. A job another worker claimed
    first, or whose state could not be written, is left out of the results
    and picked up by a later cycle.
    """
    settings = settings or get_settings()
    session_factory = session_factory or get_session_factory()

    reclaimed = 0
    async with session_factory() as db:
        if settings.job_lease_seconds > 0:
            reclaimed = await reclaim_stale_jobs(db, timedelta(seconds=settings.job_lease_seconds))
            if reclaimed:
                await log_event(
                    db,
                    "stale_jobs_reclaimed",
                    "warning",
                    source="worker",
                    metadata={"count": reclaimed, "lease_seconds": settings.job_lease_seconds},
                )
        jobs = await fetch_eligible(db, limit=settings.worker_batch_size)
        job_ids = [job.id for job in jobs]
        await db.commit()

    if not job_ids:
        logger.info("No pending jobs to process")
        return WorkerCycleResult(reclaimed=reclaimed)

    logger.info("Processing %d pending jobs", len(job_ids))

    if settings.worker_concurrency <= 1:
        outcomes = [await process_job(session_factory, job_id, settings) for job_id in job_ids]
    else:
        semaphore = asyncio.Semaphore(settings.worker_concurrency)

        async def _bounded(job_id: uuid.UUID) -> JobOutcome | None:
            async with semaphore:
                return await process_job(session_factory, job_id, settings)

        outcomes = await asyncio.gather(*(_bounded(job_id) for job_id in job_ids))

    results = [outcome for outcome in outcomes if outcome is not None]
    return WorkerCycleResult(processed=len(results), results=results, reclaimed=reclaimed)


async def process_job(
    session_factory: async_sessionmaker[AsyncSession],
    job_id: uuid.UUID,
    settings: Settings,
) -> JobOutcome | None:
    """Claim, run and settle a single job in its own session."""
    async with session_factory() as db:
        try:
            job = await claim(db, job_id)
            await db.commit()
        except SQLAlchemyError:
            logger.exception("Could not claim job %s; leaving it for the next cycle", job_id)
            return None

        if job is None:
            return None

        # plain copies: a rollback below expires the ORM instance
        attempt, max_attempts, job_type = job.attempts, job.max_attempts, job.job_type
        logger.info("=== Processing job %s (%s) attempt %d/%d ===", job_id, job_type.value, attempt, max_attempts)

        try:
            payload = decode_input(job_type, job.input_data)
            result = await HANDLERS[job_type](db, job, payload)
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            logger.error("Job %s failed: %s", job_id, error, exc_info=True)
            return await _record_failure(db, job_id, job_type.value, attempt, max_attempts, error, settings)

        return await _record_success(db, job_id, job_type.value, attempt, result.to_json())


async def _record_success(
    db: AsyncSession,
    job_id: uuid.UUID,
    job_type: str,
    attempt: int,
    result: dict,
) -> JobOutcome | None:
    try:
        completed = await complete_job(db, job_id, attempt=attempt, result=result)
        if completed:
            await log_event(
                db,
                "job_completed",
                "info",
                source="worker",
                job_id=job_id,
                metadata={"job_type": job_type, "attempt": attempt, "result": result},
            )
        await db.commit()
    except SQLAlchemyError:
        logger.exception("Could not record completion of job %s; it stays processing", job_id)
        return None

    if not completed:
        return None
    return JobOutcome(job_id=job_id, status=JobStatus.COMPLETED)


async def _record_failure(
    db: AsyncSession,
    job_id: uuid.UUID,
    job_type: str,
    attempt: int,
    max_attempts: int,
    error: str,
    settings: Settings,
) -> JobOutcome | None:
    try:
        # revert any partial writes from the handler
        await db.rollback()
        new_status = await fail_job(
            db,
            job_id,
            attempt=attempt,
            max_attempts=max_attempts,
            error=error,
            retry_backoff_seconds=settings.job_retry_backoff_seconds,
        )
        if new_status is not None:
            will_retry = new_status == JobStatus.PENDING
            await log_event(
                db,
                "job_retry_scheduled" if will_retry else "job_failed",
                "warning" if will_retry else "error",
                source="worker",
                job_id=job_id,
                message=error,
                metadata={"job_type": job_type, "attempt": attempt, "max_attempts": max_attempts},
            )
        await db.commit()
    except SQLAlchemyError:
        logger.exception("Could not record failure of job %s; it stays processing", job_id)
        return None

    if new_status is None:
        return None
    return JobOutcome(
        job_id=job_id,
        status=new_status,
        error=error,
        will_retry=new_status == JobStatus.PENDING,
    )
