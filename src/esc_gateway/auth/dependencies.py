"""FastAPI dependencies: get_current_actor, require_gateway_signature.

Usage in any protected router:
    from src.esc_gateway.auth.dependencies import get_current_actor

    @router.get("/protected")
    async def protected(actor: Actor = Depends(get_current_actor)):
        ...
"""

import hmac

from fastapi import Depends, Header
from fastapi.security import OAuth2PasswordBearer

from config.settings import settings
from src.esc_common.authz import Actor
from src.esc_common.errors import AuthorizationError
from src.esc_gateway.auth.jwt_handler import decode_token

# Tokens are issued by the marketplace app; tokenUrl only feeds Swagger UI
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


async def get_current_actor(token: str = Depends(oauth2_scheme)) -> Actor:
    """Extract and validate the JWT Bearer token, return the calling Actor.

    Raises InvalidTokenError (401) if the token is invalid or expired.
    """
    payload = decode_token(token)
    return Actor(id=str(payload["sub"]), roles=frozenset(payload["roles"]))


async def require_gateway_signature(
    verif_hash: str | None = Header(None, alias="verif-hash"),
) -> Actor:
    """Authenticate a payment-gateway callback by its shared-secret header.

    Returns the SYSTEM actor the engine uses for gateway-driven transitions.
    """
    secret = settings.PAYMENT_WEBHOOK_SECRET
    if not secret or verif_hash is None or not hmac.compare_digest(verif_hash, secret):
        raise AuthorizationError("invalid webhook signature", code=1003)
    return Actor.system()
