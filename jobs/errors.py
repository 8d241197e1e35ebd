# jobs/errors.py
"""
Job errors.

``SubmissionError`` subclasses are raised by the submitter before any job row
exists; the API renders them as ``{"error": message, **extra}`` with
``status_code``. ``HandlerError`` is raised inside the worker and only ever
reaches the caller through the job's ``error_message``.
"""
from __future__ import annotations

import uuid
from typing import Any


class SubmissionError(Exception):
    status_code: int = 400

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.message, **self.extra}


class InvalidSubmission(SubmissionError):
    status_code = 400


class PathNotFound(SubmissionError):
    status_code = 404

    def __init__(self) -> None:
        super().__init__("Learning path not found or access denied")


class PathAlreadyComplete(SubmissionError):
    status_code = 400

    def __init__(self, current_lessons: int, total_lessons: int) -> None:
        super().__init__(
            "Learning path is already complete",
            currentLessons=current_lessons,
            totalLessons=total_lessons,
        )


class ExtensionInProgress(SubmissionError):
    status_code = 409

    def __init__(self, job_id: uuid.UUID) -> None:
        super().__init__("Extension already in progress for this path", jobId=str(job_id))
        self.job_id = job_id


class IdempotencyKeyReused(SubmissionError):
    status_code = 409

    def __init__(self, job_id: uuid.UUID) -> None:
        super().__init__("Idempotency key was already used for a different request", jobId=str(job_id))
        self.job_id = job_id


class RateLimitExceeded(SubmissionError):
    status_code = 429

    def __init__(self, message: str, retry_after_seconds: int, minutes_remaining: int) -> None:
        super().__init__(
            message,
            retryAfterSeconds=retry_after_seconds,
            minutesRemaining=minutes_remaining,
        )
        self.retry_after_seconds = retry_after_seconds


class JobStateConflict(SubmissionError):
    """A requested transition is not allowed from the job's current status."""

    status_code = 409


class HandlerError(Exception):
    """A job handler cannot produce its result; the job goes through the retry path."""
