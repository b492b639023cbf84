"""
Security utilities for bearer-token identity.

Login and password handling live in the identity provider; this backend
only verifies the JWTs it issues (python-jose).  ``create_access_token``
is kept for tooling and tests that need to mint a token for a known user.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from app.config import get_settings

logger = logging.getLogger(__name__)


def create_access_token(data: dict[str, Any]) -> str:
    """Create a signed JWT access token.

    The token payload is a copy of *data* augmented with ``exp`` and ``iat``
    claims.  The ``sub`` claim should be set by the caller to
    ``str(user.id)``.

    Args:
        data: Arbitrary claims to embed in the token payload.

    Returns:
        A compact JWT string signed with the configured algorithm.
    """
    settings = get_settings()
    payload = data.copy()
    now = datetime.now(timezone.utc)
    payload["exp"] = now + timedelta(minutes=settings.JWT_EXPIRATION_MINUTES)
    payload["iat"] = now

    return jwt.encode(
        payload,
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


def verify_token(token: str) -> dict[str, Any]:
    """Decode and verify a JWT access token.

    Args:
        token: A compact JWT string.

    Returns:
        The decoded payload dictionary on success.

    Raises:
        ValueError: If the token is invalid, expired, or cannot be decoded.
                    FastAPI dependencies map this to HTTP 401.
    """
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
        return payload
    except JWTError as exc:
        logger.debug("JWT verification failed: %s", exc)
        raise ValueError("Token tidak valid atau kedaluwarsa") from exc
