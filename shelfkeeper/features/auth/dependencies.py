"""Request authentication dependencies for FastAPI.

Every protected route resolves its caller through :func:`get_auth_context`,
which accepts either a signed access token or an opaque OAuth token.
"""

import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime

from fastapi import BackgroundTasks, Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from shelfkeeper.config.logging import token_fingerprint
from shelfkeeper.database.dependencies import get_db_session
from shelfkeeper.features.oauth.clients import SCOPE_ALL, parse_scope
from shelfkeeper.features.oauth.service import TokenRegistryService
from shelfkeeper.features.user.models import User
from shelfkeeper.features.user.service import UserService

from .exceptions import InsufficientScopeException, InvalidTokenException, UnauthenticatedException
from .jwt_utils import TokenKind, verify_token

logger = logging.getLogger(__name__)

SIGNED_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+$")
OPAQUE_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_-]{43,512}$")

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    """Identity resolved for the current request."""

    user: User
    scopes: frozenset[str]
    client_id: str | None = None  # set when the credential came from the OAuth flow
    token_id: int | None = None  # IssuedToken id for OAuth credentials

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def is_first_party(self) -> bool:
        return self.client_id is None

    def has_scope(self, scope: str) -> bool:
        return SCOPE_ALL in self.scopes or scope in self.scopes


async def _authenticate_signed_token(session: AsyncSession, token: str, now: datetime) -> AuthContext:
    try:
        payload = verify_token(token, TokenKind.ACCESS, now=now)
    except InvalidTokenException as err:
        raise UnauthenticatedException() from err

    client_id = payload.get("client_id")
    token_id = None
    scopes = frozenset({SCOPE_ALL})

    # Signed tokens minted by the code exchange are only as valid as their registry row
    jwt_id = payload.get("jti")
    if client_id is not None or jwt_id is not None:
        issued = await TokenRegistryService.resolve_jwt_id(session, str(jwt_id), now) if jwt_id else None
        if issued is None:
            logger.warning(f"Signed OAuth token without an active registry entry: {token_fingerprint(token)}")
            raise UnauthenticatedException()
        client_id = issued.client_id
        token_id = issued.id
        scopes = frozenset(parse_scope(issued.scope))

    user = await UserService.get_user(session, int(payload["sub"]))
    if user is None:
        logger.warning(f"Signed token for missing user {payload['sub']}")
        raise UnauthenticatedException()

    return AuthContext(user=user, scopes=scopes, client_id=client_id, token_id=token_id)


async def _authenticate_opaque_token(session: AsyncSession, token: str, now: datetime) -> AuthContext:
    issued = await TokenRegistryService.resolve_opaque_token(session, token, now)
    if issued is None:
        logger.warning(f"Opaque token unknown, expired or revoked: {token_fingerprint(token)}")
        raise UnauthenticatedException()

    user = await UserService.get_user(session, issued.user_id)
    if user is None:
        raise UnauthenticatedException()

    return AuthContext(
        user=user,
        scopes=frozenset(parse_scope(issued.scope)),
        client_id=issued.client_id,
        token_id=issued.id,
    )


async def authenticate_token(session: AsyncSession, token: str, now: datetime | None = None) -> AuthContext:
    """Resolve a bearer credential by its shape.

    Raises:
        UnauthenticatedException: For every kind of failure

    """
    current = now or datetime.now(UTC)
    if SIGNED_TOKEN_PATTERN.match(token):
        return await _authenticate_signed_token(session, token, current)
    if OPAQUE_TOKEN_PATTERN.match(token):
        return await _authenticate_opaque_token(session, token, current)
    logger.warning(f"Bearer credential of unrecognised shape: {token_fingerprint(token)}")
    raise UnauthenticatedException()


async def resolve_auth_context(
    request: Request,
    background_tasks: BackgroundTasks,
    session: AsyncSession,
    credentials: HTTPAuthorizationCredentials | None,
) -> AuthContext | None:
    """Authenticate a bearer credential and record the caller on the request.

    Returns None if no credential was sent; a present but invalid credential raises.
    """
    if credentials is None:
        return None

    context = await authenticate_token(session, credentials.credentials)

    request.state.auth = context
    request.state.user_id = context.user_id
    if context.token_id is not None:
        background_tasks.add_task(TokenRegistryService.touch, context.token_id)
    return context


async def get_optional_auth_context(
    request: Request,
    background_tasks: BackgroundTasks,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    session: AsyncSession = Depends(get_db_session),
) -> AuthContext | None:
    """Resolve the caller if a bearer credential is present, otherwise None."""
    return await resolve_auth_context(request, background_tasks, session, credentials)


async def get_auth_context(context: AuthContext | None = Depends(get_optional_auth_context)) -> AuthContext:
    """Require an authenticated caller."""
    if context is None:
        raise UnauthenticatedException()
    return context


async def get_current_user(context: AuthContext = Depends(get_auth_context)) -> User:
    """Get the current authenticated user."""
    return context.user


def require_scope(scope: str):
    """Dependency factory requiring a scope on the caller's credential.

    Usage:
        Depends(require_scope(SCOPE_WRITE))
    """

    async def scope_checker(context: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if not context.has_scope(scope):
            raise InsufficientScopeException(f"Credential lacks the '{scope}' scope")
        return context

    return scope_checker


async def require_first_party(context: AuthContext = Depends(get_auth_context)) -> AuthContext:
    """Require a credential issued by login, not by the OAuth flow."""
    if not context.is_first_party:
        raise InsufficientScopeException("This action requires a first-party session")
    return context
