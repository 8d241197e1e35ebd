# services/observability.py
"""
Structured event logging to the events table, plus Prometheus counters for
policy exceptions that cannot be written to the store.
"""
from __future__ import annotations

import logging
import uuid

from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest
from sqlalchemy.ext.asyncio import AsyncSession

from models.event import Event

logger = logging.getLogger(__name__)

RATE_LIMIT_FAIL_OPEN_TOTAL = Counter(
    "rate_limit_fail_open_total",
    "Requests let through because the rate limit store failed",
    ["action_type"],
)


async def log_event(
    db: AsyncSession,
    event_type: str,
    level: str = "info",
    source: str | None = None,
    message: str | None = None,
    metadata: dict | None = None,
    job_id: uuid.UUID | None = None,
) -> Event:
    """Persist a structured event log entry."""
    event = Event(
        event_type=event_type,
        level=level,
        source=source,
        job_id=job_id,
        message=message,
        metadata_=metadata,
    )
    db.add(event)
    await db.flush()
    logger.log(
        getattr(logging, level.upper(), logging.INFO),
        "[%s] job=%s %s %s",
        event_type,
        job_id or "-",
        message or "",
        metadata or {},
    )
    return event


def record_rate_limit_fail_open(user_id: uuid.UUID, action_type: str, error: str) -> None:
    """
    Count and log a request the rate limiter let through because its store failed.

    Never touches the database: this fires when the store is the thing failing.
    """
    RATE_LIMIT_FAIL_OPEN_TOTAL.labels(action_type=action_type).inc()
    logger.warning(
        "policy_exception=rate_limit_fail_open user=%s action=%s error=%s",
        user_id,
        action_type,
        error,
    )


def metrics_payload() -> tuple[bytes, str]:
    """Prometheus text exposition of every registered metric."""
    return generate_latest(), CONTENT_TYPE_LATEST
