"""User profile router. Callers may only address their own account."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shelfkeeper.database.dependencies import get_db_session
from shelfkeeper.features.auth.dependencies import AuthContext, require_first_party, require_scope
from shelfkeeper.features.auth.schemas import MessageResponse
from shelfkeeper.features.oauth.clients import SCOPE_READ, SCOPE_WRITE

from .exceptions import CannotAccessOtherUser, UserNotFound
from .schemas import UserResponse, UserUpdateRequest
from .service import UserService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/users", tags=["Users"])


def _ensure_self(context: AuthContext, user_id: int) -> None:
    if context.user_id != user_id:
        logger.warning(f"User {context.user_id} attempted to access user {user_id}")
        raise CannotAccessOtherUser()


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    context: AuthContext = Depends(require_scope(SCOPE_READ)),
    session: AsyncSession = Depends(get_db_session),
):
    """Get a user profile."""
    _ensure_self(context, user_id)

    user = await UserService.get_user(session, user_id)
    if not user:
        raise UserNotFound()

    return UserResponse.model_validate(user)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    data: UserUpdateRequest,
    context: AuthContext = Depends(require_scope(SCOPE_WRITE)),
    session: AsyncSession = Depends(get_db_session),
):
    """Update email and/or full name."""
    _ensure_self(context, user_id)

    user = await UserService.get_user(session, user_id)
    if not user:
        raise UserNotFound()

    user = await UserService.update_user(session, user, email=data.email, full_name=data.full_name)
    await session.commit()
    return UserResponse.model_validate(user)


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: int,
    context: AuthContext = Depends(require_first_party),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete the caller's own account. Requires a first-party session."""
    _ensure_self(context, user_id)

    if not await UserService.delete_user(session, user_id):
        raise UserNotFound()
    await session.commit()

    return MessageResponse(message="User deleted successfully")
