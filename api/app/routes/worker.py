# api/app/routes/worker.py
"""
HTTP trigger for one worker cycle.

An external scheduler (cron, platform scheduled function) calls this every
minute or so. The cycle uses its own sessions, not the request one.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from api.app.dependencies import require_worker_secret
from api.app.schemas.jobs import WorkerRunResponse
from jobs.processor import run_worker_cycle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/worker", tags=["worker"])


@router.post(
    "/run",
    response_model=WorkerRunResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_worker_secret)],
)
async def run_worker():
    result = await run_worker_cycle()
    logger.info("Worker cycle processed %d jobs (%d reclaimed)", result.processed, result.reclaimed)
    return result.to_json()
