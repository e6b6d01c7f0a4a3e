# backend/aihub/api/v1/dependencies/auth.py
"""
Auth dependencies for HTTP endpoints.

* checks the ``Authorization: Bearer <token>`` header
* yields the user id (``sub`` claim) to the endpoint
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header

from aihub.core.errors import MSG_LOGIN_REQUIRED, ApiError
from aihub.services.auth.token import verify_access_token


async def get_optional_user_id(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
    """User id from a valid bearer token, None for missing or invalid tokens."""
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization.removeprefix("Bearer ").strip()
    try:
        claims = verify_access_token(token)
    except ValueError:
        return None
    return str(claims["sub"])


async def get_current_user_id(user_id: Optional[str] = Depends(get_optional_user_id)) -> str:
    if not user_id:
        raise ApiError(401, MSG_LOGIN_REQUIRED)
    return user_id
