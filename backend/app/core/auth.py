"""
Bearer token authentication.

Tokens are issued by the CampusMart auth service (login/registration live
there) and carry the user id in ``sub`` and the user's role in ``role``.
This module verifies them, loads the active user and enforces role
capabilities on endpoints.
"""
from datetime import datetime, timedelta
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_session
from backend.app.core.constants import USER_ROLES
from backend.app.core.settings import get_settings
from backend.app.models.user import User

TOKEN_EXPIRY_HOURS = 24 * 7  # 7 days

FORBIDDEN_MESSAGE = "You do not have permission to access this resource."


def create_access_token(user_id: int, role: str, expires_in: Optional[timedelta] = None) -> str:
    """
    Create a signed bearer token.

    Args:
        user_id: Internal user id
        role: One of USER_ROLES
        expires_in: Token lifetime (defaults to 7 days)

    Returns:
        JWT token string
    """
    if role not in USER_ROLES:
        raise ValueError(f"Unknown role: {role}")
    settings = get_settings()
    now = datetime.utcnow()
    payload = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": now + (expires_in or timedelta(hours=TOKEN_EXPIRY_HOURS)),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[int]:
    """Decode token and return the user id, or None if the token is invalid or expired."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        if payload.get("role") not in USER_ROLES:
            return None
        return int(payload["sub"])
    except (jwt.InvalidTokenError, ValueError, KeyError):
        return None


async def get_current_user(
    authorization: Optional[str] = Header(None),
    session: AsyncSession = Depends(get_session),
) -> User:
    """
    FastAPI dependency resolving the authenticated, active user.

    The role stored on the user row is authoritative; the token claim is only
    a hint for clients.

    Raises:
        HTTPException 401: Missing, malformed or invalid token, or unknown user
        HTTPException 403: Deactivated account
    """
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=401,
            detail="Invalid Authorization header format. Expected: Bearer <token>",
        )

    user_id = decode_access_token(parts[1])
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user = await session.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Your account has been deactivated.")
    return user


def require_roles(*roles: str):
    """
    Dependency factory enforcing that the current user holds one of ``roles``.

        @router.post("/verify")
        async def verify(user: User = Depends(require_roles("delivery_staff"))):
            ...
    """
    async def _checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail=FORBIDDEN_MESSAGE)
        return user

    return _checker
