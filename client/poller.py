# client/poller.py
"""
Client-side job status poller.

Submits nothing; given a job id it fetches ``GET /v1/jobs/{id}`` right away
and then once per interval (``poll_interval_seconds`` unless given) until
the job settles, reporting through ``on_complete`` / ``on_error``. A fetch
is always awaited before the next sleep starts, so requests never overlap.
"""
from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Union

import httpx

from api.app.config import get_settings

logger = logging.getLogger(__name__)

JobRecord = dict[str, Any]
OnComplete = Callable[[JobRecord], Union[None, Awaitable[None]]]
OnError = Callable[[str], Union[None, Awaitable[None]]]


def create_client(access_token: str, base_url: str | None = None, timeout: float = 10.0) -> httpx.AsyncClient:
    """AsyncClient pointed at the jobs API with bearer auth."""
    return httpx.AsyncClient(
        base_url=base_url or get_settings().api_base_url,
        headers={"Authorization": f"Bearer {access_token}"},
        timeout=timeout,
    )


async def _notify(callback: Callable[..., Any] | None, *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


def _error_text(exc: Exception) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        try:
            body = exc.response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("error"):
            return str(body["error"])
        return f"HTTP {exc.response.status_code}"
    return str(exc) or type(exc).__name__


class JobStatusPoller:
    def __init__(self, client: httpx.AsyncClient, interval: float | None = None) -> None:
        self.client = client
        self.interval = get_settings().poll_interval_seconds if interval is None else interval
        self.job: JobRecord | None = None
        self.error: str | None = None
        self._task: asyncio.Task | None = None

    @property
    def is_polling(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(
        self,
        job_id: str,
        on_complete: OnComplete | None = None,
        on_error: OnError | None = None,
    ) -> asyncio.Task:
        """Begin polling ``job_id``; any previous poll is stopped first."""
        self.stop()
        self.job = None
        self.error = None
        self._task = asyncio.create_task(self._run(str(job_id), on_complete, on_error))
        return self._task

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait(self) -> JobRecord | None:
        """Wait for the current poll to finish or be cancelled; returns the last job seen."""
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        return self.job

    async def fetch(self, job_id: str) -> JobRecord:
        response = await self.client.get(f"/v1/jobs/{job_id}")
        response.raise_for_status()
        try:
            job = response.json()
        except ValueError as exc:
            raise ValueError(f"Invalid job status response: {exc}") from exc
        if not isinstance(job, dict):
            raise ValueError("Invalid job status response: expected a JSON object")
        return job

    async def _run(self, job_id: str, on_complete: OnComplete | None, on_error: OnError | None) -> None:
        while True:
            try:
                job = await self.fetch(job_id)
            except (httpx.HTTPError, ValueError) as exc:
                self.error = _error_text(exc)
                logger.warning("Polling job %s failed: %s", job_id, self.error)
                await _notify(on_error, self.error)
                return

            self.job = job
            status = job.get("status")

            if status == "completed":
                logger.info("Job %s completed", job_id)
                await _notify(on_complete, job)
                return
            if status in ("failed", "cancelled"):
                self.error = job.get("error_message") or f"Job {status}"
                logger.info("Job %s %s: %s", job_id, status, self.error)
                await _notify(on_error, self.error)
                return

            await asyncio.sleep(self.interval)
