"""
User API router.
"""
from __future__ import annotations

from fastapi import APIRouter

from ..dependencies import CurrentUser, DatabaseSession
from ...core.schemas import UserOut
from ...core.services import users as users_service


router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserOut)
async def get_me(user: CurrentUser) -> UserOut:
    """Return the current user."""
    return UserOut.model_validate(user)


@router.delete("/me", status_code=204)
async def delete_me(db: DatabaseSession, user: CurrentUser) -> None:
    """Delete the current user with their listings and offers."""
    await users_service.delete_account(db, user.id)
    return None
