# worker/main.py
"""
Background worker: runs a worker cycle every ``worker_poll_interval`` seconds.

The same cycle is exposed over HTTP at ``POST /v1/worker/run`` for platforms
that prefer an external scheduler.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import platform
import uuid

from api.app.config import get_settings
from jobs.processor import run_worker_cycle

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("worker")


WORKER_ID = f"worker-{platform.node()}-{uuid.uuid4().hex[:8]}"


async def run_once() -> int:
    result = await run_worker_cycle()
    for outcome in result.results:
        logger.info("  %s", outcome.to_json())
    return result.processed


async def run_loop() -> None:
    settings = get_settings()
    logger.info(
        "Worker %s starting (poll=%.1fs batch=%d concurrency=%d)",
        WORKER_ID,
        settings.worker_poll_interval,
        settings.worker_batch_size,
        settings.worker_concurrency,
    )

    while True:
        try:
            await run_once()
        except Exception as exc:
            logger.exception("Worker loop error: %s", exc)

        await asyncio.sleep(settings.worker_poll_interval)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Process queued learning path jobs.")
    parser.add_argument("--once", action="store_true", help="run a single cycle and exit")
    args = parser.parse_args(argv)

    if args.once:
        processed = asyncio.run(run_once())
        logger.info("Worker %s processed %d jobs", WORKER_ID, processed)
    else:
        asyncio.run(run_loop())


if __name__ == "__main__":
    main()
