"""Authentication dependencies for FastAPI."""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gristips.auth.session import check_session
from gristips.db import get_db
from gristips.exceptions import AppError, ErrorType
from gristips.models.user import User
from gristips.utils.logging import log_auth_event


async def get_optional_user(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User | None:
    """Get current user from session if logged in."""
    check = check_session(request)
    if not check.valid:
        if check.reason == "expired":
            request.session.clear()
        return None

    result = await db.execute(select(User).where(User.id == check.user_id))
    user = result.scalar_one_or_none()

    # If user_id in session but user doesn't exist in DB, clear stale session
    if not user:
        request.session.clear()

    return user


async def get_current_user(
    user: Annotated[User | None, Depends(get_optional_user)],
) -> User:
    """Get current user, raising 401 if not authenticated."""
    if not user:
        raise AppError(ErrorType.AUTHENTICATION_FAILED, details="Not authenticated")
    return user


async def get_current_agent(
    request: Request,
    user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Get current user, raising 403 unless they are a public agent."""
    if not user.is_public_agent:
        log_auth_event(
            "access_denied",
            user_id=user.id,
            email=user.email,
            path=request.url.path,
            reason="not_public_agent",
        )
        raise AppError(ErrorType.ACCESS_DENIED, details="User is not a public agent")
    return user
