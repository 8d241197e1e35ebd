# tests/test_rate_limiter.py
"""
Tests for the per-user request quota.
"""
from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, patch

from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from jobs.rate_limiter import CREATE_PATH, EXTEND_PATH, RateLimitDecision, _insert_window, check_and_increment
from models.base import utcnow
from models.rate_limit import RateLimitWindow
from services.observability import metrics_payload
from tests.factories import fail_open_count

HOUR = timedelta(hours=1)


async def _check(session_factory, user_id, action=CREATE_PATH, limit=3, now=None) -> RateLimitDecision:
    async with session_factory() as db:
        decision = await check_and_increment(db, user_id, action, limit=limit, window=HOUR, now=now)
        await db.commit()
        return decision


async def test_allows_up_to_limit_then_blocks(session_factory, user):
    now = utcnow()
    decisions = [await _check(session_factory, user.id, now=now) for _ in range(4)]

    assert [d.allowed for d in decisions] == [True, True, True, False]
    assert [d.count for d in decisions[:3]] == [1, 2, 3]

    blocked = decisions[-1]
    assert blocked.count == 3
    assert blocked.retry_after_seconds == 3600
    assert blocked.minutes_remaining == 60


async def test_blocked_request_does_not_increment(session_factory, user):
    now = utcnow()
    for _ in range(5):
        await _check(session_factory, user.id, limit=2, now=now)

    async with session_factory() as db:
        row = (await db.execute(select(RateLimitWindow))).scalar_one()
    assert row.count == 2


async def test_window_expiry_resets_count(session_factory, user):
    start = utcnow()
    for _ in range(3):
        await _check(session_factory, user.id, now=start)
    assert not (await _check(session_factory, user.id, now=start + timedelta(minutes=59))).allowed

    renewed = await _check(session_factory, user.id, now=start + HOUR + timedelta(seconds=1))

    assert renewed.allowed
    assert renewed.count == 1
    async with session_factory() as db:
        rows = (await db.execute(select(RateLimitWindow))).scalars().all()
    assert len(rows) == 1


async def test_retry_after_counts_down(session_factory, user):
    start = utcnow()
    for _ in range(3):
        await _check(session_factory, user.id, now=start)

    blocked = await _check(session_factory, user.id, now=start + timedelta(minutes=45, seconds=30))

    assert not blocked.allowed
    assert blocked.retry_after_seconds == 14 * 60 + 30
    assert blocked.minutes_remaining == 15


async def test_actions_and_users_are_independent(session_factory, user, other_user):
    now = utcnow()
    for _ in range(3):
        await _check(session_factory, user.id, CREATE_PATH, now=now)

    assert (await _check(session_factory, user.id, EXTEND_PATH, now=now)).allowed
    assert (await _check(session_factory, other_user.id, CREATE_PATH, now=now)).allowed
    assert not (await _check(session_factory, user.id, CREATE_PATH, now=now)).allowed


async def test_default_limits_come_from_settings(session_factory, user):
    async with session_factory() as db:
        decision = await check_and_increment(db, user.id, CREATE_PATH)
    assert decision.allowed
    assert decision.limit == 5


async def test_store_error_fails_open(session_factory, user):
    before = fail_open_count(CREATE_PATH)
    before_extend = fail_open_count(EXTEND_PATH)
    error = OperationalError("SELECT 1", {}, Exception("database is down"))
    with patch("jobs.rate_limiter._load_window", new_callable=AsyncMock, side_effect=error):
        decision = await _check(session_factory, user.id)

    assert decision.allowed
    assert decision.fail_open
    assert fail_open_count(CREATE_PATH) == before + 1
    assert fail_open_count(EXTEND_PATH) == before_extend


async def test_store_error_leaves_session_usable(session_factory, user):
    error = OperationalError("SELECT 1", {}, Exception("database is down"))
    async with session_factory() as db:
        with patch("jobs.rate_limiter._load_window", new_callable=AsyncMock, side_effect=error):
            decision = await check_and_increment(db, user.id, CREATE_PATH, limit=3, window=HOUR)
        assert decision.fail_open
        # same transaction keeps working after the failed check
        assert (await db.execute(select(RateLimitWindow))).scalars().all() == []
        await db.commit()


async def test_fail_open_is_exported_to_prometheus(session_factory, user):
    error = OperationalError("SELECT 1", {}, Exception("database is down"))
    with patch("jobs.rate_limiter._load_window", new_callable=AsyncMock, side_effect=error):
        await _check(session_factory, user.id, EXTEND_PATH)

    body, content_type = metrics_payload()
    assert content_type.startswith("text/plain")
    assert b'rate_limit_fail_open_total{action_type="extend_path"}' in body


# ─────────────────────────────────────────────
# dialects without ON CONFLICT
# ─────────────────────────────────────────────

async def test_plain_insert_opens_window(session_factory, user, monkeypatch):
    monkeypatch.setattr("jobs.rate_limiter._UPSERT_INSERTS", {})
    now = utcnow()

    decisions = [await _check(session_factory, user.id, limit=2, now=now) for _ in range(3)]

    assert [d.allowed for d in decisions] == [True, True, False]
    assert not any(d.fail_open for d in decisions)


async def test_plain_insert_conflict_reports_existing_window(session_factory, user, monkeypatch):
    monkeypatch.setattr("jobs.rate_limiter._UPSERT_INSERTS", {})
    now = utcnow()
    await _check(session_factory, user.id, now=now)

    async with session_factory() as db:
        created = await _insert_window(db, user.id, CREATE_PATH, now, HOUR)
        # the failed insert only rolled back its own savepoint
        row = (await db.execute(select(RateLimitWindow))).scalar_one()
        await db.commit()

    assert created is False
    assert row.count == 1


def test_minutes_remaining_rounds_up():
    decision = RateLimitDecision(allowed=False, limit=5, count=5, retry_after=timedelta(seconds=61))
    assert decision.retry_after_seconds == 61
    assert decision.minutes_remaining == 2
