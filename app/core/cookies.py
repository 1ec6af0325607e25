"""Signed, expiring session cookie values."""
from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, status
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from app.core.config import settings

SESSION_COOKIE_NAME = "user_session"
_serializer = URLSafeTimedSerializer(settings.SECRET_KEY, salt="session-cookie")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def make_session_value(email: str) -> str:
    """Sign ``email`` into a value suitable for the session cookie."""
    return _serializer.dumps({"email": email.strip().lower()})


def parse_session_cookie(raw_value: Optional[str], max_age: Optional[int] = None) -> str:
    """Return the email inside a session cookie, or raise 401."""
    if not raw_value:
        raise _unauthorized("Not authenticated")
    try:
        data = _serializer.loads(raw_value, max_age=max_age or settings.SESSION_MAX_AGE_SECONDS)
    except SignatureExpired:
        raise _unauthorized("Session expired") from None
    except BadSignature:
        raise _unauthorized("Invalid session") from None

    email = data.get("email") if isinstance(data, dict) else None
    if not email:
        raise _unauthorized("Invalid session")
    return email
