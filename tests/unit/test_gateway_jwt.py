"""Unit tests for JWT handler and the webhook signature dependency."""

from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest
from jose import jwt

from config.settings import settings
from src.esc_common.enums import PlatformRole
from src.esc_common.errors import AuthorizationError, InvalidTokenError
from src.esc_gateway.auth.dependencies import get_current_actor, require_gateway_signature
from src.esc_gateway.auth.jwt_handler import create_access_token, decode_token


def test_access_token_contains_correct_claims() -> None:
    token = create_access_token("user-123", roles=[PlatformRole.USER, PlatformRole.ADMIN])
    payload = jwt.get_unverified_claims(token)
    assert payload["sub"] == "user-123"
    assert payload["type"] == "access"
    assert payload["roles"] == ["USER", "ADMIN"]


def test_decode_valid_token_parses_roles() -> None:
    token = create_access_token("user-abc", roles=["SUPPORT"])
    payload = decode_token(token)
    assert payload["roles"] == [PlatformRole.SUPPORT]


def test_expired_token_is_rejected() -> None:
    with patch(
        "src.esc_gateway.auth.jwt_handler._ACCESS_EXPIRE",
        timedelta(seconds=-1),
    ):
        token = create_access_token("user-abc")
    with pytest.raises(InvalidTokenError):
        decode_token(token)


def test_tampered_token_is_rejected() -> None:
    token = create_access_token("user-abc")
    with pytest.raises(InvalidTokenError):
        decode_token(token[:-4] + "xxxx")


def _sign(claims: dict) -> str:
    now = datetime.now(UTC)
    payload = {"iat": now, "exp": now + timedelta(minutes=5), **claims}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


@pytest.mark.parametrize(
    "claims",
    [
        {"sub": "u1", "type": "refresh", "roles": ["USER"]},
        {"sub": "", "type": "access", "roles": ["USER"]},
        {"sub": "u1", "type": "access", "roles": ["OWNER"]},
        {"sub": "u1", "type": "access", "roles": ["SYSTEM"]},
    ],
)
def test_bad_claims_are_rejected(claims: dict) -> None:
    with pytest.raises(InvalidTokenError):
        decode_token(_sign(claims))


async def test_current_actor_from_token() -> None:
    actor = await get_current_actor(create_access_token("user-9", roles=["USER", "ADMIN"]))
    assert actor.id == "user-9"
    assert actor.is_staff


class TestGatewaySignature:
    async def test_valid_signature_yields_system_actor(self) -> None:
        actor = await require_gateway_signature(settings.PAYMENT_WEBHOOK_SECRET)
        assert actor.is_system

    @pytest.mark.parametrize("header", [None, "", "wrong-secret"])
    async def test_bad_signature(self, header: str | None) -> None:
        with pytest.raises(AuthorizationError):
            await require_gateway_signature(header)

    async def test_unset_secret_rejects_everything(self) -> None:
        with patch.object(settings, "PAYMENT_WEBHOOK_SECRET", ""):
            with pytest.raises(AuthorizationError):
                await require_gateway_signature("")
