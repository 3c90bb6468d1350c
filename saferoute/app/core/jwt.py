"""
JWT token utilities.

Tokens are issued by the external auth service; this module only needs to
verify them and read the ``sub`` claim (the user id). ``create_access_token``
is kept for local tooling and tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from saferoute.app.core.config import settings


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: Claims to encode (should include: sub = user id)
        expires_delta: Optional custom lifetime
    """
    to_encode = data.copy()
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    to_encode["exp"] = datetime.now(timezone.utc) + lifetime
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and validate a JWT access token.

    Returns:
        Decoded payload if signature and expiry check out, None otherwise
    """
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None


def subject_from_token(token: str) -> Optional[str]:
    """User id carried by a valid token, or None."""
    payload = decode_access_token(token)
    if not payload or not payload.get("sub"):
        return None
    return str(payload["sub"])
