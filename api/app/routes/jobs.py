# api/app/routes/jobs.py
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.app.dependencies import get_current_user, get_session
from api.app.schemas.jobs import ExtendJobRequest, GenerateJobRequest, JobAccepted, JobDetail
from jobs.errors import InvalidSubmission, JobStateConflict
from jobs.queue import cancel_job, get_job
from jobs.submitter import submit_extend_path, submit_generate_path
from models.user import User
from services.observability import log_event

router = APIRouter(prefix="/jobs", tags=["jobs"])

IDEMPOTENCY_KEY_MAX_CHARS = 255


def _request_metadata(request: Request) -> dict:
    return {
        "user_agent": request.headers.get("user-agent"),
        "request_id": getattr(request.state, "request_id", None),
    }


def _check_idempotency_key(key: str | None) -> str | None:
    if key is None:
        return None
    key = key.strip()
    if not key or len(key) > IDEMPOTENCY_KEY_MAX_CHARS:
        raise InvalidSubmission(f"Idempotency-Key must be 1-{IDEMPOTENCY_KEY_MAX_CHARS} characters")
    return key


def _accepted(response: Response, job_id: uuid.UUID, replayed: bool, message: str) -> JobAccepted:
    if replayed:
        response.headers["Idempotent-Replayed"] = "true"
    return JobAccepted(jobId=job_id, message=message)


@router.post("/generate-path", response_model=JobAccepted, status_code=status.HTTP_202_ACCEPTED)
async def create_generate_path_job(
    body: GenerateJobRequest,
    request: Request,
    response: Response,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Queue learning path generation and return immediately."""
    submission = await submit_generate_path(
        db,
        user.id,
        body,
        idempotency_key=_check_idempotency_key(idempotency_key),
        metadata=_request_metadata(request),
    )
    job_id = submission.job.id
    # the worker must be able to see the row as soon as the client has the id
    await db.commit()

    return _accepted(response, job_id, submission.replayed, "Learning path generation started")


@router.post("/extend-path", response_model=JobAccepted, status_code=status.HTTP_202_ACCEPTED)
async def create_extend_path_job(
    body: ExtendJobRequest,
    request: Request,
    response: Response,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    submission = await submit_extend_path(
        db,
        user.id,
        body.path_id,
        idempotency_key=_check_idempotency_key(idempotency_key),
        metadata=_request_metadata(request),
    )
    job_id = submission.job.id
    await db.commit()

    return _accepted(response, job_id, submission.replayed, "Learning path extension started")


@router.get("/{job_id}", response_model=JobDetail)
async def get_job_status(
    job_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Poll for job status. Jobs owned by someone else look missing."""
    job = await get_job(db, job_id, user_id=user.id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobDetail.model_validate(job)


@router.post("/{job_id}/cancel", response_model=JobDetail)
async def cancel_pending_job(
    job_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    job = await get_job(db, job_id, user_id=user.id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")

    if not await cancel_job(db, job_id, user.id):
        current = await get_job(db, job_id, user_id=user.id)
        raise JobStateConflict(
            f"Job cannot be cancelled while {current.status.value}",
            status=current.status.value,
        )

    await log_event(db, "job_cancelled", "info", source="api", job_id=job_id, metadata={
        "user_id": str(user.id),
    })
    await db.commit()

    return JobDetail.model_validate(await get_job(db, job_id, user_id=user.id))
