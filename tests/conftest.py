# tests/conftest.py
from __future__ import annotations

import os

# settings are read lazily, but must exist before anything calls get_settings()
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("OPENAI_API_KEY", "test-key")

import uuid  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402

from db.engine import build_engine  # noqa: E402
from models import Base  # noqa: E402
from models.user import User  # noqa: E402
from tests.factories import create_user  # noqa: E402


@pytest.fixture
async def engine(tmp_path):
    # file-backed so every session gets its own connection, as with a real server
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def user_token() -> str:
    return f"token-{uuid.uuid4().hex}"


@pytest.fixture
async def user(session_factory, user_token) -> User:
    return await create_user(session_factory, token=user_token)


@pytest.fixture
async def other_user(session_factory) -> User:
    return await create_user(session_factory)
