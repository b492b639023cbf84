"""
Caller identity for the Termin Pembayaran API.

Provides:
- ``get_current_user`` — FastAPI dependency that extracts and validates
  the Bearer JWT from the ``Authorization`` header.
- ``require_role`` — dependency factory that enforces role-based access
  control on top of ``get_current_user``.

Tokens are issued by the identity provider; this module only verifies them.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User
from app.utils.security import verify_token

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# FastAPI dependency: current authenticated user
# ---------------------------------------------------------------------------


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    db: Annotated[Session, Depends(get_db)],
) -> User:
    """Resolve the caller's identity from a JWT.

    Verifies the token signature and expiration, then loads the active
    ``User`` named by the ``sub`` claim.

    Args:
        credentials: Parsed ``Authorization: Bearer <token>`` header.
        db: SQLAlchemy session supplied by ``get_db``.

    Returns:
        The authenticated ``User`` ORM instance.

    Raises:
        HTTPException 401: If the token is missing, invalid or expired, or
                           the user no longer exists or is inactive.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Kredensial tidak dapat divalidasi",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        raise credentials_exception

    try:
        payload = verify_token(credentials.credentials)
    except ValueError:
        raise credentials_exception

    # ``sub`` carries the user's primary key as a string
    user_id_str: str | None = payload.get("sub")
    if user_id_str is None:
        raise credentials_exception

    try:
        user_id = int(user_id_str)
    except (TypeError, ValueError):
        raise credentials_exception

    user: User | None = (
        db.query(User)
        .filter(User.id == user_id, User.is_active.is_(True))
        .first()
    )

    if user is None:
        logger.debug("get_current_user: unknown or inactive user id=%s", user_id)
        raise credentials_exception

    return user


# ---------------------------------------------------------------------------
# Role enforcement dependency factory
# ---------------------------------------------------------------------------


def require_role(*roles: str):
    """Return a FastAPI dependency that restricts access to the given roles.

    .. code-block:: python

        @router.post("/{milestone_id}/generate-invoice")
        def generate_invoice(
            current_user: Annotated[User, Depends(require_role(*ROLES_FINANCE))],
        ):
            ...

    Args:
        *roles: Role codes from ``constants.ROLES`` permitted on the endpoint.

    Returns:
        A dependency resolving to the authenticated ``User``.

    Raises:
        HTTPException 403: If the user's role is not in *roles*.
    """
    allowed = frozenset(roles)

    def _check_role(
        current_user: Annotated[User, Depends(get_current_user)],
    ) -> User:
        if current_user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Akses ditolak. Memerlukan salah satu peran: {sorted(allowed)}",
            )
        return current_user

    return _check_role
