"""Authentication service layer."""

import logging
from datetime import UTC, datetime

from jwt.exceptions import InvalidTokenError
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shelfkeeper.config.settings import settings
from shelfkeeper.features.user.models import User
from shelfkeeper.features.user.schemas import UserResponse
from shelfkeeper.features.user.service import UserService

from .exceptions import InvalidTokenException, MalformedTokenException, RefreshTokenRevokedException
from .jwt_utils import TokenKind, create_access_token, create_refresh_token, decode_token, verify_token
from .models import RefreshToken
from .schemas import TokenResponse

logger = logging.getLogger(__name__)


class AuthService:
    """Service for first-party login and signed token management."""

    @staticmethod
    async def authenticate_user(session: AsyncSession, credential: str, password: str) -> User | None:
        """Authenticate a user with username (or email) and password.

        Args:
            session: Database session
            credential: Username or email address
            password: Plain text password

        Returns:
            User object if authentication successful, None otherwise

        """
        user = await UserService.get_by_credential(session, credential)

        if not user:
            logger.warning(f"Login attempt for unknown account: {credential}")
            return None

        if not user.verify_password(password):
            logger.warning(f"Login attempt with wrong password: {credential}")
            return None

        return user

    @staticmethod
    async def create_tokens(
        session: AsyncSession,
        user: User,
        ip_address: str | None = None,
        user_agent: str | None = None,
        now: datetime | None = None,
    ) -> TokenResponse:
        """Issue an access and refresh token pair for an authenticated user.

        The refresh token's jti is recorded so it can be rotated out or revoked.
        """
        issued_at = now or datetime.now(UTC)
        claims = {"sub": str(user.id), "username": user.username}

        access_token = create_access_token(claims, now=issued_at)
        refresh_token, jti, expires_at = create_refresh_token(claims, now=issued_at)

        session.add(
            RefreshToken(
                jti=jti,
                user_id=user.id,
                expires_at=expires_at,
                created_at=issued_at,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )
        await session.flush()

        return TokenResponse(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=settings.access_token_expire_seconds,
            user=UserResponse.model_validate(user),
        )

    @staticmethod
    async def refresh_access_token(
        session: AsyncSession,
        refresh_token: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> TokenResponse:
        """Rotate a refresh token into a brand-new token pair.

        The presented token's record is revoked by a single conditional update,
        so concurrent refreshes of the same token produce exactly one new pair.

        Raises:
            InvalidTokenException: Token fails signature, kind or expiry checks,
                or its user no longer exists
            RefreshTokenRevokedException: Token was never recorded, already
                rotated, or revoked by logout

        """
        now = datetime.now(UTC)
        payload = verify_token(refresh_token, TokenKind.REFRESH, now=now)

        jti = payload.get("jti")
        if not jti:
            raise MalformedTokenException()

        stmt = (
            update(RefreshToken)
            .where(
                RefreshToken.jti == jti,
                RefreshToken.revoked_at.is_(None),
                RefreshToken.expires_at > now,
            )
            .values(revoked_at=now)
            .returning(RefreshToken.user_id)
        )
        result = await session.execute(stmt)
        user_id = result.scalar_one_or_none()

        if user_id is None:
            logger.warning(f"Refresh attempted with unknown or revoked refresh token for user {payload['sub']}")
            raise RefreshTokenRevokedException()

        user = await UserService.get_user(session, user_id)
        if user is None:
            raise InvalidTokenException(detail="User not found")

        return await AuthService.create_tokens(session, user, ip_address, user_agent, now=now)

    @staticmethod
    async def revoke_refresh_token(session: AsyncSession, refresh_token: str, user_id: int | None = None) -> bool:
        """Revoke a refresh token (logout).

        Only the token's signature is checked; an expired token may still be
        revoked. Returns False for garbage, unknown or already revoked tokens.
        """
        try:
            payload = decode_token(refresh_token)
        except InvalidTokenError:
            return False

        if payload.get("type") != TokenKind.REFRESH.value or not payload.get("jti"):
            return False

        stmt = select(RefreshToken).where(RefreshToken.jti == payload["jti"])
        if user_id is not None:
            stmt = stmt.where(RefreshToken.user_id == user_id)
        result = await session.execute(stmt)
        stored_token = result.scalar_one_or_none()

        if stored_token and not stored_token.revoked:
            stored_token.revoked_at = datetime.now(UTC)
            await session.flush()
            return True

        return False
