"""
auth/tokens.py -- Signed identity tokens for principals.

JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry the
principal_id, username and the guard the principal authenticated under.
Verification returns None on any failure -- the dependency layer turns that
into a 401. Login itself (passwords, sessions) lives outside this service;
the identity subsystem mints tokens with create_access_token().

Layer rule: no imports from api/, nav/, client/, or cache/. Import from core/
is allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from core.config import get_settings

logger = logging.getLogger("staffportal.auth")

_ALGORITHM = "HS256"


def create_access_token(principal_id: int, username: str, guard: str, expire_seconds: int = 0) -> str:
    """Encode a signed JWT with principal identity and configurable expiry.

    Args:
        principal_id:   Numeric principal ID stored in the permission store.
        username:       Stored as the JWT subject claim.
        guard:          Guard the principal authenticated under (e.g. "staff").
        expire_seconds: Token lifetime. 0 (default) uses Settings.token_expire_seconds.
    """
    settings = get_settings()
    duration = expire_seconds if expire_seconds > 0 else settings.token_expire_seconds
    payload = {
        "sub": username,
        "principal_id": principal_id,
        "guard": guard,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=duration),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure."""
    try:
        payload = jwt.decode(token, get_settings().secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        logger.debug("Rejected access token")
        return None
    if "principal_id" not in payload or "guard" not in payload:
        return None
    return payload
