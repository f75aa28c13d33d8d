"""User service layer."""

import logging
from datetime import UTC, datetime

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .exceptions import EmailAlreadyExists, UsernameAlreadyExists
from .models import User
from .schemas import UserRegisterRequest

logger = logging.getLogger(__name__)


class UserService:
    """Service for user operations."""

    @staticmethod
    async def register_user(session: AsyncSession, data: UserRegisterRequest) -> User:
        """Create an account from a validated registration request.

        Raises:
            UsernameAlreadyExists: Username is taken
            EmailAlreadyExists: Email is taken

        """
        stmt = select(User.username, User.email).where(
            or_(User.username == data.username, User.email == data.email)
        )
        result = await session.execute(stmt)
        conflicts = result.all()

        # Username conflicts are reported first when both collide
        if any(username == data.username for username, _ in conflicts):
            raise UsernameAlreadyExists()
        if conflicts:
            raise EmailAlreadyExists()

        user = User(
            username=data.username,
            email=data.email,
            full_name=data.full_name,
            hashed_password=User.hash_password(data.password),
        )
        session.add(user)
        await session.flush()
        await session.refresh(user)

        logger.info(f"User registered: {user.username}")
        return user

    @staticmethod
    async def get_user(session: AsyncSession, user_id: int) -> User | None:
        """Get user by ID."""
        stmt = select(User).where(User.id == user_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_credential(session: AsyncSession, credential: str) -> User | None:
        """Get user by username or email."""
        stmt = select(User).where(or_(User.username == credential, User.email == credential))
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def update_user(session: AsyncSession, user: User, **kwargs) -> User:
        """Update user fields (full_name, email only).

        Raises:
            EmailAlreadyExists: If email is being changed to an existing email

        """
        new_email = kwargs.get("email")
        if new_email is not None and new_email != user.email:
            stmt = select(User).where(User.email == new_email)
            result = await session.execute(stmt)
            if result.scalar_one_or_none():
                raise EmailAlreadyExists()

        for key in ("full_name", "email"):
            value = kwargs.get(key)
            if value is not None:
                setattr(user, key, value)

        user.updated_at = datetime.now(UTC)
        await session.flush()
        logger.info(f"User updated: {user.username}")
        return user

    @staticmethod
    async def delete_user(session: AsyncSession, user_id: int) -> bool:
        """Delete user by ID."""
        user = await UserService.get_user(session, user_id)

        if user:
            await session.delete(user)
            await session.flush()
            logger.info(f"User deleted: {user.username}")
            return True
        return False
