# api/app/routes/health.py
from __future__ import annotations

from fastapi import APIRouter, Response

from services.observability import metrics_payload

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    return {"status": "ok", "service": "learning-jobs-api"}


@router.get("/metrics", include_in_schema=False)
async def metrics():
    body, content_type = metrics_payload()
    return Response(content=body, media_type=content_type)
