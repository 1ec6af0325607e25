"""FastAPI dependencies resolving the signed-in user."""
from __future__ import annotations

from typing import Optional

from fastapi import Cookie, Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cookies import SESSION_COOKIE_NAME, parse_session_cookie
from app.core.database import get_db
from app.domain.users.models import User


async def get_session_email(
    session_value: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME),
) -> str:
    return parse_session_cookie(session_value)


async def get_current_user(
    email: str = Depends(get_session_email),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Load the active account owning the session; 401 otherwise."""
    result = await db.execute(select(User).where(func.lower(User.email) == email.lower()))
    user = result.scalar_one_or_none()

    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account disabled")

    return user
