# api/app/schemas/jobs.py
from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from jobs.payloads import GeneratePathInput
from models.job import JobStatus, JobType


class GenerateJobRequest(GeneratePathInput):
    pass


class ExtendJobRequest(BaseModel):
    path_id: uuid.UUID = Field(..., alias="pathId")


class JobAccepted(BaseModel):
    jobId: uuid.UUID
    message: str


class JobDetail(BaseModel):
    id: uuid.UUID
    job_type: JobType
    status: JobStatus
    input_data: dict
    result_data: dict | None = None
    error_message: str | None = None
    attempts: int
    max_attempts: int
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None

    class Config:
        from_attributes = True


class WorkerJobResult(BaseModel):
    jobId: uuid.UUID
    status: JobStatus
    error: str | None = None
    willRetry: bool | None = None


class WorkerRunResponse(BaseModel):
    processed: int
    results: list[WorkerJobResult]
