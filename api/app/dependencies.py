# api/app/dependencies.py
from __future__ import annotations

import hmac
from collections.abc import AsyncGenerator

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.app.config import get_settings
from db.session import get_db
from models.access_token import AccessToken
from models.user import User


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_db():
        yield session


def _bearer_token(authorization: str | None) -> str:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or malformed Authorization header",
        )
    return token.strip()


async def get_current_user(
    authorization: str | None = Header(default=None),
    db: AsyncSession = Depends(get_session),
) -> User:
    """Authenticate the caller by bearer access token."""
    token = _bearer_token(authorization)
    stmt = select(AccessToken).where(
        AccessToken.token == token,
        AccessToken.revoked_at.is_(None),
    )
    access_token = (await db.execute(stmt)).scalar_one_or_none()
    if access_token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid access token",
        )

    user = await db.get(User, access_token.user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


async def require_worker_secret(
    x_worker_secret: str | None = Header(default=None, alias="X-Worker-Secret"),
) -> None:
    """Guard the worker trigger. Open when no secret is configured (local dev)."""
    expected = get_settings().worker_trigger_secret
    if not expected:
        return
    if x_worker_secret is None or not hmac.compare_digest(x_worker_secret, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid worker secret")
