"""
security.py — JWT utilities.

The platform's auth service issues HS256 bearer tokens whose *sub* claim is
the user's ID. This API never runs a login flow; it only verifies those
tokens to identify the reporter or reviewer behind a request.

Uses python-jose for JWT creation / verification. Configuration is read
from greenguardian.core.config.settings so the shared secret lives in
environment variables / .env files, never in code.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from greenguardian.core.config import settings


def create_access_token(subject: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed JWT.

    Used by the seed script and tests to mint tokens the same way the
    auth service does.

    Args:
        subject:       The user's string ID.
        expires_delta: Custom TTL; defaults to settings.jwt_expiry_hours.

    Returns:
        Encoded JWT string.
    """
    delta = expires_delta or timedelta(hours=settings.jwt_expiry_hours)
    expire = datetime.now(tz=timezone.utc) + delta
    payload = {"sub": subject, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Optional[str]:
    """
    Decode and validate a JWT.

    Returns the *sub* claim (user ID) on success, or None if the token
    is missing, expired, or otherwise invalid.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
        return payload.get("sub")
    except JWTError:
        return None
