# tests/test_submitter.py
"""
Tests for job submission: validation order, duplicate detection, quotas.
"""
from __future__ import annotations

import uuid

import pytest
from pydantic import ValidationError
from sqlalchemy import text

from jobs.errors import (
    ExtensionInProgress,
    IdempotencyKeyReused,
    PathAlreadyComplete,
    PathNotFound,
    RateLimitExceeded,
)
from jobs.payloads import GeneratePathInput
from jobs.queue import claim
from jobs.rate_limiter import CREATE_PATH
from jobs.submitter import submit_extend_path, submit_generate_path
from models.job import Job, JobStatus, JobType
from tests.factories import count_jobs, create_path, fail_open_count


def _request(**overrides) -> GeneratePathInput:
    data = {"prompt": "Teach me Python from scratch", "difficulty": "beginner"}
    data.update(overrides)
    return GeneratePathInput.model_validate(data)


async def _generate(session_factory, user_id, request=None, **kwargs):
    async with session_factory() as db:
        result = await submit_generate_path(db, user_id, request or _request(), **kwargs)
        await db.commit()
        return result


async def _extend(session_factory, user_id, path_id, **kwargs):
    async with session_factory() as db:
        result = await submit_extend_path(db, user_id, path_id, **kwargs)
        await db.commit()
        return result


# ─────────────────────────────────────────────
# input validation
# ─────────────────────────────────────────────

@pytest.mark.parametrize(
    "overrides",
    [
        {"prompt": "too short"},
        {"prompt": "x" * 1001},
        {"prompt": "   padded   "},
        {"difficulty": "expert"},
    ],
)
def test_generate_input_rejects_bad_values(overrides):
    with pytest.raises(ValidationError):
        _request(**overrides)


def test_generate_input_keeps_file_fields():
    request = _request(fileContents="# Notes", fileName="notes.md", fileSize=7, mimeType="text/markdown")
    assert request.to_json() == {
        "prompt": "Teach me Python from scratch",
        "difficulty": "beginner",
        "fileContents": "# Notes",
        "fileName": "notes.md",
        "fileSize": 7,
        "mimeType": "text/markdown",
    }


# ─────────────────────────────────────────────
# generate_path
# ─────────────────────────────────────────────

async def test_generate_path_enqueues_pending_job(session_factory, user):
    result = await _generate(session_factory, user.id, metadata={"user_agent": "pytest"})

    job = result.job
    assert not result.replayed
    assert job.job_type == JobType.GENERATE_PATH
    assert job.status == JobStatus.PENDING
    assert job.input_data == {"prompt": "Teach me Python from scratch", "difficulty": "beginner"}
    assert job.metadata_["created_from"] == "create-path-job"
    assert job.metadata_["user_agent"] == "pytest"
    assert job.idempotency_key.startswith("generate_path:")


async def test_generate_path_rate_limited_after_five(session_factory, user):
    for _ in range(5):
        await _generate(session_factory, user.id)

    with pytest.raises(RateLimitExceeded) as excinfo:
        await _generate(session_factory, user.id)

    err = excinfo.value
    assert err.status_code == 429
    assert err.message.startswith("Rate limit exceeded. You can create 5 learning paths per hour.")
    assert "Try again in 60 minutes." in err.message
    assert err.to_payload()["minutesRemaining"] == 60
    assert await count_jobs(session_factory) == 5


async def test_generate_path_submits_when_quota_store_is_broken(engine, session_factory, user):
    async with engine.begin() as conn:
        await conn.execute(text("DROP TABLE rate_limits"))
    before = fail_open_count(CREATE_PATH)

    result = await _generate(session_factory, user.id)

    assert result.job.status == JobStatus.PENDING
    assert fail_open_count(CREATE_PATH) == before + 1
    async with session_factory() as db:
        stored = await db.get(Job, result.job.id)
    assert stored is not None
    assert stored.status == JobStatus.PENDING


async def test_extend_path_submits_when_quota_store_is_broken(engine, session_factory, user):
    path = await create_path(session_factory, user.id)
    async with engine.begin() as conn:
        await conn.execute(text("DROP TABLE rate_limits"))

    result = await _extend(session_factory, user.id, path.id)

    assert result.job.job_type == JobType.EXTEND_PATH
    assert await count_jobs(session_factory) == 1


async def test_idempotent_replay_returns_same_job_without_quota(session_factory, user):
    first = await _generate(session_factory, user.id, idempotency_key="req-1")
    for _ in range(6):
        again = await _generate(session_factory, user.id, idempotency_key="req-1")
        assert again.replayed
        assert again.job.id == first.job.id

    assert await count_jobs(session_factory) == 1
    # quota still has four left
    for _ in range(4):
        await _generate(session_factory, user.id)


async def test_idempotency_key_reuse_with_other_payload(session_factory, user):
    first = await _generate(session_factory, user.id, idempotency_key="req-1")

    with pytest.raises(IdempotencyKeyReused) as excinfo:
        await _generate(session_factory, user.id, _request(difficulty="advanced"), idempotency_key="req-1")

    assert excinfo.value.status_code == 409
    assert excinfo.value.to_payload()["jobId"] == str(first.job.id)


# ─────────────────────────────────────────────
# extend_path
# ─────────────────────────────────────────────

async def test_extend_path_enqueues_job(session_factory, user):
    path = await create_path(session_factory, user.id)

    result = await _extend(session_factory, user.id, path.id)

    assert result.job.job_type == JobType.EXTEND_PATH
    assert result.job.input_data == {"pathId": str(path.id)}
    assert result.job.metadata_["current_lesson_count"] == 3
    assert result.job.metadata_["total_lessons"] == 10


async def test_extend_missing_or_foreign_path_is_not_found(session_factory, user, other_user):
    path = await create_path(session_factory, other_user.id)

    for path_id in (uuid.uuid4(), path.id):
        with pytest.raises(PathNotFound) as excinfo:
            await _extend(session_factory, user.id, path_id)
        assert excinfo.value.status_code == 404
        assert excinfo.value.message == "Learning path not found or access denied"

    assert await count_jobs(session_factory) == 0


async def test_extend_complete_path_rejected(session_factory, user):
    path = await create_path(session_factory, user.id, total_lessons=3)

    with pytest.raises(PathAlreadyComplete) as excinfo:
        await _extend(session_factory, user.id, path.id)

    assert excinfo.value.status_code == 400
    assert excinfo.value.to_payload() == {
        "error": "Learning path is already complete",
        "currentLessons": 3,
        "totalLessons": 3,
    }


async def test_extend_conflicts_with_in_flight_extension(session_factory, user):
    path = await create_path(session_factory, user.id)
    first = await _extend(session_factory, user.id, path.id)

    with pytest.raises(ExtensionInProgress) as excinfo:
        await _extend(session_factory, user.id, path.id)
    assert excinfo.value.to_payload()["jobId"] == str(first.job.id)

    # still a conflict once a worker holds it
    async with session_factory() as db:
        await claim(db, first.job.id)
        await db.commit()
    with pytest.raises(ExtensionInProgress):
        await _extend(session_factory, user.id, path.id)

    assert await count_jobs(session_factory) == 1


async def test_extend_rate_limited_after_ten(session_factory, user):
    paths = [await create_path(session_factory, user.id) for _ in range(11)]
    for path in paths[:10]:
        await _extend(session_factory, user.id, path.id)

    with pytest.raises(RateLimitExceeded) as excinfo:
        await _extend(session_factory, user.id, paths[10].id)

    assert "extend paths 10 times per hour" in excinfo.value.message
    assert await count_jobs(session_factory) == 10
