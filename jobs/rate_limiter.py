# jobs/rate_limiter.py
"""
Per-user, per-action request quota over a one-hour window.

One ``rate_limits`` row per (user, action). The window starts on first use
and is overwritten in place once it has expired. All mutation goes through
conditional UPDATEs so concurrent submitters cannot push ``count`` past the
ceiling.

The check runs inside a SAVEPOINT. If the store itself errors, only the
savepoint is rolled back, so the caller's transaction stays usable, and the
limiter fails open: the request is allowed and counted as a policy exception.
"""
from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import insert, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from api.app.config import get_settings
from models.base import as_utc, utcnow
from models.rate_limit import RateLimitWindow
from services.observability import record_rate_limit_fail_open

logger = logging.getLogger(__name__)

CREATE_PATH = "create_path"
EXTEND_PATH = "extend_path"

# dialects with INSERT ... ON CONFLICT DO NOTHING
_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    count: int
    retry_after: timedelta | None = None
    fail_open: bool = False

    @property
    def retry_after_seconds(self) -> int:
        if self.retry_after is None:
            return 0
        return max(0, math.ceil(self.retry_after.total_seconds()))

    @property
    def minutes_remaining(self) -> int:
        return math.ceil(self.retry_after_seconds / 60)


async def check_and_increment(
    db: AsyncSession,
    user_id: uuid.UUID,
    action_type: str,
    *,
    limit: int | None = None,
    window: timedelta | None = None,
    now: datetime | None = None,
) -> RateLimitDecision:
    settings = get_settings()
    if limit is None:
        limit = settings.rate_limit_for(action_type)
    if window is None:
        window = timedelta(seconds=settings.rate_limit_window_seconds)

    try:
        async with db.begin_nested():
            return await _check_and_increment(db, user_id, action_type, limit, window, now or utcnow())
    except SQLAlchemyError as exc:
        record_rate_limit_fail_open(user_id, action_type, str(exc))
        return RateLimitDecision(allowed=True, limit=limit, count=0, fail_open=True)


async def _check_and_increment(
    db: AsyncSession,
    user_id: uuid.UUID,
    action_type: str,
    limit: int,
    window: timedelta,
    now: datetime,
) -> RateLimitDecision:
    row = await _load_window(db, user_id, action_type)

    if row is None:
        if await _insert_window(db, user_id, action_type, now, window):
            logger.info("Rate limit window opened user=%s action=%s", user_id, action_type)
            return RateLimitDecision(allowed=True, limit=limit, count=1)
        # another request created it first
        row = await _load_window(db, user_id, action_type)

    if as_utc(row.window_end) <= now:
        reset = await db.execute(
            update(RateLimitWindow)
            .where(
                RateLimitWindow.id == row.id,
                RateLimitWindow.window_end == row.window_end,
            )
            .values(count=1, window_start=now, window_end=now + window)
            .execution_options(synchronize_session=False)
        )
        if reset.rowcount == 1:
            logger.info("Rate limit window renewed user=%s action=%s", user_id, action_type)
            return RateLimitDecision(allowed=True, limit=limit, count=1)
        row = await _load_window(db, user_id, action_type)

    if row.count < limit:
        bumped = await db.execute(
            update(RateLimitWindow)
            .where(
                RateLimitWindow.id == row.id,
                RateLimitWindow.count < limit,
                RateLimitWindow.window_end > now,
            )
            .values(count=RateLimitWindow.count + 1)
            .execution_options(synchronize_session=False)
        )
        if bumped.rowcount == 1:
            return RateLimitDecision(allowed=True, limit=limit, count=row.count + 1)
        row = await _load_window(db, user_id, action_type)

    retry_after = max(as_utc(row.window_end) - now, timedelta(0))
    logger.info(
        "Rate limit hit user=%s action=%s count=%d/%d retry_after=%s",
        user_id,
        action_type,
        row.count,
        limit,
        retry_after,
    )
    return RateLimitDecision(allowed=False, limit=limit, count=row.count, retry_after=retry_after)


async def _load_window(
    db: AsyncSession,
    user_id: uuid.UUID,
    action_type: str,
) -> RateLimitWindow | None:
    stmt = (
        select(RateLimitWindow)
        .where(
            RateLimitWindow.user_id == user_id,
            RateLimitWindow.action_type == action_type,
        )
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def _insert_window(
    db: AsyncSession,
    user_id: uuid.UUID,
    action_type: str,
    now: datetime,
    window: timedelta,
) -> bool:
    """Open the first window for a key. False if a concurrent request opened it first."""
    table = RateLimitWindow.__table__
    values = dict(
        id=uuid.uuid4(),
        user_id=user_id,
        action_type=action_type,
        count=1,
        window_start=now,
        window_end=now + window,
        created_at=now,
        updated_at=now,
    )

    upsert = _UPSERT_INSERTS.get(db.get_bind().dialect.name)
    if upsert is not None:
        created = await db.execute(
            upsert(table)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["user_id", "action_type"])
        )
        return created.rowcount == 1

    # no ON CONFLICT here: the unique constraint decides, inside its own savepoint
    try:
        async with db.begin_nested():
            await db.execute(insert(table).values(**values))
    except IntegrityError:
        return False
    return True
