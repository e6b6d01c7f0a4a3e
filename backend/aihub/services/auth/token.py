"""
Token-Utilities
===============
Issues and verifies the HS256 session tokens handed out after OTP login.
The ``sub`` claim carries the user id.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from aihub.core.config import Settings, settings as default_settings

log = logging.getLogger("uvicorn.error")


def create_access_token(user_id: str, *, cfg: Optional[Settings] = None, now: Optional[int] = None) -> str:
    cfg = cfg or default_settings
    issued = int(now if now is not None else time.time())
    claims = {
        "sub": user_id,
        "iat": issued,
        "exp": issued + cfg.access_ttl_sec,
        "iss": cfg.app_name,
    }
    return jwt.encode(claims, cfg.jwt_secret, algorithm=cfg.jwt_alg)


def verify_access_token(token: str, *, cfg: Optional[Settings] = None) -> Dict[str, Any]:
    """
    * returns the claims dict when signature, expiry and issuer check out
    * raises ValueError otherwise
    """
    cfg = cfg or default_settings
    try:
        claims: Dict[str, Any] = jwt.decode(
            token,
            cfg.jwt_secret,
            algorithms=[cfg.jwt_alg],
            issuer=cfg.app_name,
        )
    except JWTError as exc:
        log.debug("JWT verify failed: %s", exc)
        raise ValueError(str(exc)) from exc
    if not claims.get("sub"):
        raise ValueError("sub claim missing")
    return claims
