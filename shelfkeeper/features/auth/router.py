"""Authentication router (first-party login and signed token endpoints)."""

import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from shelfkeeper.config.settings import settings
from shelfkeeper.database.dependencies import get_db_session
from shelfkeeper.features.user.models import User
from shelfkeeper.features.user.schemas import UserRegisterRequest, UserResponse
from shelfkeeper.features.user.service import UserService
from shelfkeeper.shared.rate_limit import limiter

from .dependencies import get_current_user
from .exceptions import InvalidCredentialsException
from .schemas import MessageResponse, RefreshTokenRequest, TokenResponse, UserLoginRequest
from .service import AuthService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["Authentication"])


def _client_info(request: Request) -> tuple[str | None, str | None]:
    ip_address = request.client.host if request.client else None
    return ip_address, request.headers.get("user-agent")


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.login_rate_limit)
async def register(data: UserRegisterRequest, request: Request, session: AsyncSession = Depends(get_db_session)):
    """Create an account and return a token pair for it.

    - **username**: 3-50 characters, letters, digits, dots, dashes and underscores
    - **email**: Unique email address
    - **password**: Minimum 8 characters, must include uppercase, lowercase, and digit
    """
    user = await UserService.register_user(session, data)
    tokens = await AuthService.create_tokens(session, user, *_client_info(request))
    await session.commit()
    return tokens


@router.post("/login", response_model=TokenResponse)
@limiter.limit(settings.login_rate_limit)
async def login(data: UserLoginRequest, request: Request, session: AsyncSession = Depends(get_db_session)):
    """Login and get JWT tokens.

    - **username**: Username or email address
    - **password**: Password

    Returns access_token, refresh_token and the user profile.
    """
    user = await AuthService.authenticate_user(session, data.username, data.password)

    if not user:
        raise InvalidCredentialsException()

    tokens = await AuthService.create_tokens(session, user, *_client_info(request))
    await session.commit()

    logger.info(f"User logged in: {user.username}")
    return tokens


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(data: RefreshTokenRequest, request: Request, session: AsyncSession = Depends(get_db_session)):
    """Exchange a refresh token for a new token pair.

    The presented refresh token is revoked; reuse it and the call fails.
    """
    tokens = await AuthService.refresh_access_token(session, data.refresh_token, *_client_info(request))
    await session.commit()
    return tokens


@router.post("/logout", response_model=MessageResponse)
async def logout(
    data: RefreshTokenRequest,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Logout and revoke refresh token.

    - **refresh_token**: Refresh token to revoke
    """
    revoked = await AuthService.revoke_refresh_token(session, data.refresh_token, user_id=current_user.id)

    if revoked:
        await session.commit()
        logger.info(f"User logged out: {current_user.username}")
        return MessageResponse(message="Successfully logged out")
    return MessageResponse(message="Token already revoked or not found")


@router.get("/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)):
    """Get the authenticated user's profile."""
    return UserResponse.model_validate(current_user)
