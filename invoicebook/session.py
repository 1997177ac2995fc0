from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import jwt

from invoicebook.errors import AuthenticationError
from invoicebook.models import Session

logger = logging.getLogger(__name__)

_ROLES = {"admin": "Admin", "accountant": "accountant", "user": "user"}


def _decode(token: str) -> Dict[str, Any]:
    # The backend verifies the signature; here the claims only pick endpoints.
    try:
        claims = jwt.decode(token, options={"verify_signature": False, "verify_exp": False})
    except jwt.InvalidTokenError as exc:
        logger.info("Failed to decode token: %s", exc)
        raise AuthenticationError("Invalid authentication token") from exc
    if not isinstance(claims, dict):
        raise AuthenticationError("Invalid authentication token")
    return claims


def _role(value: Any) -> Optional[str]:
    if not value:
        return None
    return _ROLES.get(str(value).strip().lower())


def _user_id(claims: Dict[str, Any]) -> Optional[str]:
    for key in ("userId", "user_id", "sub", "id"):
        value = claims.get(key)
        if value not in (None, ""):
            return str(value)
    return None


def session_from_token(token: Optional[str], user_id: Optional[str] = None) -> Session:
    """Build the caller's session from a bearer token.

    An explicit ``user_id`` (e.g. from a cookie) wins over the token claims.
    """
    if not token or not token.strip():
        raise AuthenticationError("No authentication token found. Please log in again.")

    token = token.strip()
    claims = _decode(token)
    return Session(
        token=token,
        user_id=user_id or _user_id(claims),
        role=_role(claims.get("role")),
        email=claims.get("email"),
    )


def session_from_header(authorization: Optional[str]) -> Session:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthenticationError("No authentication token found. Please log in again.")
    return session_from_token(authorization.split(" ", 1)[1])
