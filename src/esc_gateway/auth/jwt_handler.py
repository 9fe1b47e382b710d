"""JWT access-token creation and verification.

Users, passwords and refresh tokens live in the surrounding marketplace
application; this service only verifies the access tokens it issues.

Claims:
  sub    user id
  roles  list of PlatformRole values (USER, ADMIN, SUPPORT, COMPLIANCE)
  type   always "access"
"""

from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from config.settings import settings
from src.esc_common.enums import PlatformRole
from src.esc_common.errors import InvalidTokenError

_ALGORITHM = settings.JWT_ALGORITHM  # "HS256"
_ACCESS_EXPIRE = timedelta(minutes=settings.JWT_EXPIRE_MINUTES)


def create_access_token(user_id: str, roles: Iterable[PlatformRole | str] = ("USER",)) -> str:
    """Issue a short-lived access token (default: 30 min)."""
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "roles": [PlatformRole(r).value for r in roles],
        "type": "access",
        "iat": now,
        "exp": now + _ACCESS_EXPIRE,
    }
    return str(jwt.encode(payload, settings.JWT_SECRET, algorithm=_ALGORITHM))


def decode_token(token: str) -> dict[str, Any]:
    """Decode and validate an access token.

    Raises:
        InvalidTokenError: signature/expiry invalid, wrong type, or unknown role.
    """
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[_ALGORITHM],  # Explicit list prevents algorithm confusion
        )
    except JWTError:
        raise InvalidTokenError() from None

    if payload.get("type") != "access" or not payload.get("sub"):
        raise InvalidTokenError()
    try:
        payload["roles"] = [PlatformRole(r) for r in payload.get("roles", [])]
    except ValueError:
        raise InvalidTokenError() from None
    # SYSTEM is reserved for the scheduler and webhook paths
    if PlatformRole.SYSTEM in payload["roles"]:
        raise InvalidTokenError()
    return payload
