"""JWT utilities: minting and verifying the signed access and refresh tokens."""

import logging
import uuid
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

import jwt
from jwt.exceptions import DecodeError, InvalidSignatureError, InvalidTokenError

from shelfkeeper.config.logging import token_fingerprint
from shelfkeeper.config.settings import settings

from .exceptions import (
    InvalidSignatureException,
    MalformedTokenException,
    TokenExpiredException,
    WrongTokenKindException,
)

logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ["sub", "iat", "exp", "type"]


class TokenKind(StrEnum):
    """Value of the ``type`` claim embedded in every signed token."""

    ACCESS = "access"
    REFRESH = "refresh"


def _encode(claims: dict[str, Any]) -> str:
    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
    now: datetime | None = None,
) -> str:
    """Create a JWT access token.

    Args:
        data: Payload data to encode in the token (must include ``sub``)
        expires_delta: Optional lifetime, defaults to ACCESS_TOKEN_EXPIRE_MINUTES
        now: Issue time, defaults to the current time

    Returns:
        Encoded JWT token string

    """
    issued_at = now or datetime.now(UTC)
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)

    to_encode = data.copy()
    to_encode.update({"iat": issued_at, "exp": issued_at + lifetime, "type": TokenKind.ACCESS.value})
    return _encode(to_encode)


def create_refresh_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
    now: datetime | None = None,
) -> tuple[str, str, datetime]:
    """Create a JWT refresh token (longer expiration).

    Every refresh token carries a fresh ``jti`` so that the server can record
    and later revoke it.

    Returns:
        Tuple of (encoded token, jti, expiry)

    """
    issued_at = now or datetime.now(UTC)
    expires_at = issued_at + (expires_delta or timedelta(days=settings.refresh_token_expire_days))
    jti = uuid.uuid4().hex

    to_encode = data.copy()
    to_encode.update({"iat": issued_at, "exp": expires_at, "jti": jti, "type": TokenKind.REFRESH.value})
    return _encode(to_encode), jti, expires_at


def decode_token(token: str) -> dict[str, Any]:
    """Decode a JWT and check its signature only.

    Expiry is deliberately not checked here; :func:`verify_token` compares it
    against the caller's clock.

    Raises:
        InvalidTokenError: If the token cannot be decoded or the signature is wrong

    """
    return jwt.decode(
        token,
        settings.secret_key,
        algorithms=[settings.jwt_algorithm],
        options={"verify_exp": False, "require": REQUIRED_CLAIMS},
    )


def verify_token(token: str, expected_kind: TokenKind, now: datetime | None = None) -> dict[str, Any]:
    """Verify signature, kind and expiry of a signed token.

    Args:
        token: Encoded JWT
        expected_kind: Kind the caller accepts
        now: Reference time for the expiry check, defaults to the current time

    Returns:
        Decoded claims

    Raises:
        InvalidSignatureException: Signature does not match the signing secret
        MalformedTokenException: Structure or required claims cannot be parsed
        WrongTokenKindException: Token kind differs from ``expected_kind``
        TokenExpiredException: ``exp`` is at or before ``now``

    """
    try:
        payload = decode_token(token)
    except InvalidSignatureError as err:
        logger.warning(f"Signed token rejected (bad signature): {token_fingerprint(token)}")
        raise InvalidSignatureException() from err
    except (DecodeError, InvalidTokenError) as err:
        logger.warning(f"Signed token rejected (malformed: {type(err).__name__}): {token_fingerprint(token)}")
        raise MalformedTokenException() from err

    if payload.get("type") != expected_kind.value:
        logger.warning(
            f"Signed token rejected (kind {payload.get('type')!r}, expected {expected_kind.value}): "
            f"{token_fingerprint(token)}"
        )
        raise WrongTokenKindException(expected=expected_kind.value)

    current = now or datetime.now(UTC)
    try:
        expires_at = int(payload["exp"])
        int(payload["sub"])
    except (TypeError, ValueError) as err:
        raise MalformedTokenException() from err

    if expires_at <= int(current.timestamp()):
        logger.info(f"Signed token rejected (expired): {token_fingerprint(token)}")
        raise TokenExpiredException()

    return payload
