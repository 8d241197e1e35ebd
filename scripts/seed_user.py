# scripts/seed_user.py
"""
Seed a development user and access token.
Run: python -m scripts.seed_user [--email ...] [--token ...]
"""
from __future__ import annotations

import argparse
import asyncio
import secrets

from sqlalchemy import select

from db.session import get_db
from models.access_token import AccessToken
from models.user import User


async def seed(name: str, email: str, token: str | None) -> None:
    async for db in get_db():
        stmt = select(User).where(User.email == email)
        result = await db.execute(stmt)
        user = result.scalar_one_or_none()

        if user:
            print(f"Seed user already exists: {user.id}")
        else:
            user = User(name=name, email=email)
            db.add(user)
            await db.flush()
            print(f"Created user: {user.id}")

        stmt = select(AccessToken).where(
            AccessToken.user_id == user.id,
            AccessToken.revoked_at.is_(None),
        )
        result = await db.execute(stmt)
        access_token = result.scalars().first()
        if access_token and token is None:
            print(f"Access token already exists: {access_token.token}")
        else:
            access_token = AccessToken(
                user_id=user.id,
                token=token or secrets.token_urlsafe(32),
                label="dev",
            )
            db.add(access_token)
            await db.flush()
            print(f"Created access token: {access_token.token}")

        print("Seed complete.")


def main() -> None:
    parser = argparse.ArgumentParser(description="Create a development user with an access token.")
    parser.add_argument("--name", default="Dev User")
    parser.add_argument("--email", default="dev@learning.local")
    parser.add_argument("--token", default=None, help="use this token instead of a random one")
    args = parser.parse_args()
    asyncio.run(seed(args.name, args.email, args.token))


if __name__ == "__main__":
    main()
