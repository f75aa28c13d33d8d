"""OAuth2 service layer: authorization codes, code exchange and the token registry."""

import hashlib
import logging
import secrets
import uuid
from datetime import UTC, datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shelfkeeper.config.logging import token_fingerprint
from shelfkeeper.config.settings import settings
from shelfkeeper.database.client import get_session
from shelfkeeper.features.auth.exceptions import UnauthenticatedException
from shelfkeeper.features.auth.jwt_utils import create_access_token
from shelfkeeper.features.user.models import User
from shelfkeeper.features.user.service import UserService

from .clients import ClientRegistry, OAuthClient, is_absolute_uri, parse_scope
from .exceptions import (
    InvalidClientException,
    InvalidGrantException,
    InvalidRedirectUriException,
    InvalidRequestException,
    InvalidScopeException,
    UnknownClientException,
    UnsupportedGrantTypeException,
    UnsupportedResponseTypeException,
)
from .models import AuthorizationCode, IssuedToken
from .schemas import AuthorizeRequest, AuthorizeResponse, TokenRequest, TokenResponse

logger = logging.getLogger(__name__)

RESPONSE_TYPE_CODE = "code"
GRANT_TYPE_AUTHORIZATION_CODE = "authorization_code"


def generate_code() -> str:
    """Random authorization code with 256 bits of entropy."""
    return secrets.token_urlsafe(32)


def generate_opaque_token() -> str:
    """Random opaque access token with 512 bits of entropy."""
    return secrets.token_urlsafe(64)


def hash_token(token: str) -> str:
    """Digest under which an opaque token is stored and looked up."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class AuthorizationCodeService:
    """Front door of the authorization code flow."""

    @staticmethod
    def validate_request(request: AuthorizeRequest, registry: ClientRegistry) -> OAuthClient:
        """Check the parts of an authorization request that do not depend on the caller.

        Runs before the bearer credential is looked at, so a malformed request
        is reported as such whatever credential accompanies it.

        Raises:
            UnsupportedResponseTypeException: response_type is not ``code``
            UnknownClientException: client_id is empty or not registered
            InvalidRedirectUriException: redirect_uri is not absolute or not allowed for the client

        """
        if request.response_type != RESPONSE_TYPE_CODE:
            raise UnsupportedResponseTypeException()

        client = registry.get(request.client_id)
        if client is None:
            logger.warning(f"Authorization requested for unknown client {request.client_id!r}")
            raise UnknownClientException()

        redirect_uri = request.redirect_uri or ""
        if not is_absolute_uri(redirect_uri):
            raise InvalidRedirectUriException("redirect_uri must be an absolute URI")
        if not client.allows_redirect_uri(redirect_uri):
            logger.warning(f"Redirect URI {redirect_uri!r} is not registered for client {client.client_id}")
            raise InvalidRedirectUriException("redirect_uri is not registered for this client")

        return client

    @staticmethod
    async def authorize(
        session: AsyncSession,
        user: User | None,
        request: AuthorizeRequest,
        registry: ClientRegistry,
        now: datetime | None = None,
    ) -> AuthorizeResponse:
        """Validate an authorization request and mint a single-use code.

        Args:
            session: Database session
            user: Authenticated first-party user, None if the caller holds no valid credential
            request: Authorization request parameters
            registry: Registered clients
            now: Reference time, defaults to the current time

        Returns:
            The new code and the caller's ``state``, echoed verbatim

        Raises:
            UnsupportedResponseTypeException: response_type is not ``code``
            UnknownClientException: client_id is empty or not registered
            InvalidRedirectUriException: redirect_uri is not absolute or not allowed for the client
            UnauthenticatedException: No authenticated user
            InvalidScopeException: Requested scope is not allowed for the client

        """
        client = AuthorizationCodeService.validate_request(request, registry)

        if user is None:
            raise UnauthenticatedException()

        # No scope requested means everything the client may hold
        scopes = parse_scope(request.scope) or client.default_scopes()
        if not scopes or not client.allows_scope(scopes):
            raise InvalidScopeException()

        issued_at = now or datetime.now(UTC)
        authorization_code = AuthorizationCode(
            code=generate_code(),
            client_id=client.client_id,
            user_id=user.id,
            redirect_uri=request.redirect_uri,
            scope=" ".join(scopes),
            expires_at=issued_at + timedelta(minutes=settings.authorization_code_expire_minutes),
            created_at=issued_at,
        )
        session.add(authorization_code)
        await session.flush()

        logger.info(f"OAuth authorization code generated for user {user.id} and client {client.client_id}")
        return AuthorizeResponse(code=authorization_code.code, state=request.state)


class TokenRegistryService:
    """Back door of the authorization code flow and the issued token registry."""

    @staticmethod
    async def exchange(
        session: AsyncSession,
        request: TokenRequest,
        registry: ClientRegistry,
        now: datetime | None = None,
    ) -> TokenResponse:
        """Redeem an authorization code for an opaque token and a signed access token.

        The code is claimed by one conditional UPDATE; of any number of
        concurrent redemptions exactly one observes the row.

        Raises:
            UnsupportedGrantTypeException: grant_type is not ``authorization_code``
            InvalidClientException: Client id or secret is wrong
            InvalidRequestException: code is missing
            InvalidGrantException: Code unknown, expired, already used, or issued
                to another client or redirect URI

        """
        if request.grant_type != GRANT_TYPE_AUTHORIZATION_CODE:
            raise UnsupportedGrantTypeException()

        client = registry.authenticate(request.client_id, request.client_secret)
        if client is None:
            logger.warning(f"Invalid OAuth client credentials attempt for client {request.client_id!r}")
            raise InvalidClientException()

        if not request.code:
            raise InvalidRequestException("Missing code")

        current = now or datetime.now(UTC)
        stmt = (
            update(AuthorizationCode)
            .where(
                AuthorizationCode.code == request.code,
                AuthorizationCode.client_id == client.client_id,
                AuthorizationCode.redirect_uri == (request.redirect_uri or ""),
                AuthorizationCode.used_at.is_(None),
                AuthorizationCode.expires_at > current,
            )
            .values(used_at=current)
            .returning(AuthorizationCode.user_id, AuthorizationCode.scope)
        )
        result = await session.execute(stmt)
        claimed = result.one_or_none()

        if claimed is None:
            cause = await TokenRegistryService._rejection_cause(session, request, client.client_id, current)
            logger.warning(
                f"Authorization code rejected ({cause}) for client {client.client_id}: "
                f"{token_fingerprint(request.code)}"
            )
            raise InvalidGrantException()

        user_id, scope = claimed
        user = await UserService.get_user(session, user_id)
        if user is None:
            logger.warning(f"Authorization code owner {user_id} no longer exists")
            raise InvalidGrantException()

        lifetime = timedelta(seconds=settings.oauth_access_token_expire_seconds)
        opaque_token = generate_opaque_token()
        jwt_id = uuid.uuid4().hex
        jwt_token = create_access_token(
            {
                "sub": str(user.id),
                "username": user.username,
                "jti": jwt_id,
                "client_id": client.client_id,
                "scope": scope,
            },
            expires_delta=lifetime,
            now=current,
        )

        session.add(
            IssuedToken(
                token_hash=hash_token(opaque_token),
                jwt_id=jwt_id,
                client_id=client.client_id,
                user_id=user.id,
                scope=scope,
                expires_at=current + lifetime,
                created_at=current,
            )
        )
        await session.flush()

        logger.info(f"OAuth access token issued for user {user.id} and client {client.client_id}")
        return TokenResponse(
            access_token=opaque_token,
            expires_in=settings.oauth_access_token_expire_seconds,
            scope=scope,
            jwt_token=jwt_token,
        )

    @staticmethod
    async def _rejection_cause(session: AsyncSession, request: TokenRequest, client_id: str, now: datetime) -> str:
        """Explain a failed redemption for the log; never returned to the caller."""
        stmt = select(AuthorizationCode).where(AuthorizationCode.code == request.code)
        result = await session.execute(stmt)
        code = result.scalar_one_or_none()

        if code is None:
            return "not_found"
        if code.client_id != client_id:
            return "client_mismatch"
        if code.used_at is not None:
            return "already_used"
        if code.expires_at <= now:
            return "expired"
        if code.redirect_uri != (request.redirect_uri or ""):
            return "redirect_mismatch"
        return "lost_race"

    @staticmethod
    async def resolve_opaque_token(session: AsyncSession, token: str, now: datetime) -> IssuedToken | None:
        """Return the active registry row for an opaque token, or None."""
        stmt = select(IssuedToken).where(IssuedToken.token_hash == hash_token(token))
        result = await session.execute(stmt)
        issued = result.scalar_one_or_none()

        if issued is None or not issued.is_active(now):
            return None
        return issued

    @staticmethod
    async def resolve_jwt_id(session: AsyncSession, jwt_id: str, now: datetime) -> IssuedToken | None:
        """Return the active registry row backing an OAuth-minted signed token, or None."""
        stmt = select(IssuedToken).where(IssuedToken.jwt_id == jwt_id)
        result = await session.execute(stmt)
        issued = result.scalar_one_or_none()

        if issued is None or not issued.is_active(now):
            return None
        return issued

    @staticmethod
    async def revoke_token(session: AsyncSession, token: str, client_id: str | None = None) -> int:
        """Revoke an opaque token. Idempotent; returns the number of rows newly revoked."""
        stmt = (
            update(IssuedToken)
            .where(IssuedToken.token_hash == hash_token(token), IssuedToken.revoked_at.is_(None))
            .values(revoked_at=datetime.now(UTC))
        )
        if client_id is not None:
            stmt = stmt.where(IssuedToken.client_id == client_id)
        result = await session.execute(stmt)
        return result.rowcount or 0

    @staticmethod
    async def revoke_client_tokens(session: AsyncSession, client_id: str, user_id: int | None = None) -> int:
        """Revoke every live token of a client, optionally only those owned by one user."""
        stmt = (
            update(IssuedToken)
            .where(IssuedToken.client_id == client_id, IssuedToken.revoked_at.is_(None))
            .values(revoked_at=datetime.now(UTC))
        )
        if user_id is not None:
            stmt = stmt.where(IssuedToken.user_id == user_id)
        result = await session.execute(stmt)
        revoked = result.rowcount or 0
        logger.info(f"Revoked {revoked} token(s) for client {client_id}")
        return revoked

    @staticmethod
    async def revoke_token_by_id(session: AsyncSession, token_id: int, user_id: int) -> int:
        """Revoke one of a user's tokens by registry id."""
        stmt = (
            update(IssuedToken)
            .where(
                IssuedToken.id == token_id,
                IssuedToken.user_id == user_id,
                IssuedToken.revoked_at.is_(None),
            )
            .values(revoked_at=datetime.now(UTC))
        )
        result = await session.execute(stmt)
        return result.rowcount or 0

    @staticmethod
    async def get_user_token(session: AsyncSession, token_id: int, user_id: int) -> IssuedToken | None:
        stmt = select(IssuedToken).where(IssuedToken.id == token_id, IssuedToken.user_id == user_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_user_tokens(session: AsyncSession, user_id: int) -> list[IssuedToken]:
        """All tokens issued on behalf of a user, newest first."""
        stmt = select(IssuedToken).where(IssuedToken.user_id == user_id).order_by(IssuedToken.id.desc())
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def touch(token_id: int) -> None:
        """Record usage of a registry token.

        Runs after the response in its own session; failures are logged and
        dropped.
        """
        try:
            async with get_session() as session:
                await session.execute(
                    update(IssuedToken).where(IssuedToken.id == token_id).values(last_used_at=datetime.now(UTC))
                )
        except (SQLAlchemyError, RuntimeError) as exc:
            logger.warning(f"Could not record usage of OAuth token {token_id}: {exc}")
