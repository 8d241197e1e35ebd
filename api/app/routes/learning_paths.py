# api/app/routes/learning_paths.py
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.app.dependencies import get_current_user, get_session
from api.app.schemas.learning_paths import LearningPathDetail
from models.learning_path import LearningPath
from models.user import User

router = APIRouter(prefix="/learning-paths", tags=["learning-paths"])


@router.get("/{path_id}", response_model=LearningPathDetail)
async def get_learning_path(
    path_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    stmt = select(LearningPath).where(
        LearningPath.id == path_id,
        LearningPath.user_id == user.id,
    )
    path = (await db.execute(stmt)).scalar_one_or_none()
    if path is None:
        raise HTTPException(status_code=404, detail="Learning path not found or access denied")
    return LearningPathDetail.model_validate(path)
