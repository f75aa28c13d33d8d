"""OAuth2 routers: the authorization code flow and token management."""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, Response
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from shelfkeeper.config.settings import settings
from shelfkeeper.database.dependencies import get_db_session
from shelfkeeper.features.auth.dependencies import AuthContext, require_first_party, resolve_auth_context, security
from shelfkeeper.features.auth.exceptions import InsufficientScopeException
from shelfkeeper.shared.rate_limit import limiter

from .clients import ClientRegistry, get_client_registry
from .exceptions import InvalidClientException, InvalidRequestException
from .schemas import (
    AuthorizeRequest,
    AuthorizeResponse,
    IssuedTokenResponse,
    RevocationResponse,
    RevokeRequest,
    TokenRequest,
    TokenResponse,
)
from .service import AuthorizationCodeService, TokenRegistryService

logger = logging.getLogger(__name__)

# Protocol endpoints, mounted at the application root
router = APIRouter(prefix="/oauth", tags=["OAuth2"])

# Token management for the signed-in user, mounted under the API prefix
management_router = APIRouter(prefix="/oauth", tags=["OAuth2 token management"])


@router.post("/authorize", response_model=AuthorizeResponse)
async def authorize(
    request: Request,
    background_tasks: BackgroundTasks,
    client_id: str | None = Query(None),
    redirect_uri: str | None = Query(None),
    response_type: str | None = Query(None),
    scope: str | None = Query(None),
    state: str | None = Query(None),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    session: AsyncSession = Depends(get_db_session),
    registry: ClientRegistry = Depends(get_client_registry),
):
    """Issue an authorization code to a registered client for the signed-in user.

    The caller must present a first-party access token. ``state`` is returned
    unchanged. The request parameters are validated before the credential.
    """
    auth_request = AuthorizeRequest(
        client_id=client_id,
        redirect_uri=redirect_uri,
        response_type=response_type,
        scope=scope,
        state=state,
    )
    AuthorizationCodeService.validate_request(auth_request, registry)

    context = await resolve_auth_context(request, background_tasks, session, credentials)
    if context is not None and not context.is_first_party:
        raise InsufficientScopeException("OAuth-issued credentials cannot authorize clients")

    result = await AuthorizationCodeService.authorize(
        session, context.user if context else None, auth_request, registry
    )
    await session.commit()
    return result


@router.post("/token", response_model=TokenResponse)
@limiter.limit(settings.token_rate_limit)
async def token(
    data: TokenRequest,
    request: Request,
    response: Response,
    session: AsyncSession = Depends(get_db_session),
    registry: ClientRegistry = Depends(get_client_registry),
):
    """Exchange an authorization code for an access token.

    Returns the opaque registry token as ``access_token`` and the signed
    bearer credential as ``jwt_token``.
    """
    result = await TokenRegistryService.exchange(session, data, registry)
    await session.commit()

    response.headers["Cache-Control"] = "no-store"
    response.headers["Pragma"] = "no-cache"
    return result


@router.post("/revoke", response_model=RevocationResponse)
async def revoke(
    data: RevokeRequest,
    session: AsyncSession = Depends(get_db_session),
    registry: ClientRegistry = Depends(get_client_registry),
):
    """Revoke an opaque access token issued to the calling client.

    Succeeds for unknown or already revoked tokens.
    """
    client = registry.authenticate(data.client_id, data.client_secret)
    if client is None:
        raise InvalidClientException()
    if not data.token:
        raise InvalidRequestException("Missing token")

    revoked = await TokenRegistryService.revoke_token(session, data.token, client_id=client.client_id)
    await session.commit()

    logger.info(f"Client {client.client_id} revoked {revoked} token(s)")
    return RevocationResponse(revoked=revoked)


@management_router.get("/tokens", response_model=list[IssuedTokenResponse])
async def list_tokens(
    context: AuthContext = Depends(require_first_party),
    session: AsyncSession = Depends(get_db_session),
):
    """List the OAuth tokens issued on the caller's behalf."""
    tokens = await TokenRegistryService.list_user_tokens(session, context.user_id)
    return [IssuedTokenResponse.model_validate(t) for t in tokens]


@management_router.delete("/tokens/{token_id}", response_model=RevocationResponse)
async def revoke_token(
    token_id: int,
    context: AuthContext = Depends(require_first_party),
    session: AsyncSession = Depends(get_db_session),
):
    """Revoke one of the caller's OAuth tokens. Idempotent."""
    revoked = await TokenRegistryService.revoke_token_by_id(session, token_id, context.user_id)
    await session.commit()
    return RevocationResponse(revoked=revoked)


@management_router.delete("/clients/{client_id}/tokens", response_model=RevocationResponse)
async def revoke_client_tokens(
    client_id: str,
    context: AuthContext = Depends(require_first_party),
    session: AsyncSession = Depends(get_db_session),
):
    """Revoke every OAuth token the caller granted to a client. Idempotent."""
    revoked = await TokenRegistryService.revoke_client_tokens(session, client_id, user_id=context.user_id)
    await session.commit()
    return RevocationResponse(revoked=revoked)
