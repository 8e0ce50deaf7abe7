"""
Actor resolution.

Credential verification happens upstream of this service: the API
expects a header ``X-User-Id`` carrying the already authenticated user
id. If the user does not exist in the database yet, it is created on the
fly so that listings and offers always reference a known user row.

The rest of the core never looks at request state; routers pass the
resolved id explicitly to every service call.
"""
from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import User


async def ensure_user(db: AsyncSession, user_id: int, name: Optional[str] = None) -> User:
    """Load the user with ``user_id``, creating it if it does not exist."""
    user = await db.get(User, user_id)
    if user is None:
        user = User(id=user_id, name=name)
        db.add(user)
        await db.flush()
    return user


async def get_current_user(db: AsyncSession, x_user_id: Optional[int]) -> User:
    """Retrieve the current authenticated user.

    :param db: SQLAlchemy async session.
    :param x_user_id: User ID passed via header.
    :return: The loaded or newly created ``User`` object.
    :raises HTTPException: if no user ID is provided.
    """
    if x_user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return await ensure_user(db, x_user_id)
