"""Connector service layer."""

import logging
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .crypto import TokenCipher, get_token_cipher
from .exceptions import ConnectorInactive, ConnectorNotFound
from .models import Connector, ConnectorProvider

logger = logging.getLogger(__name__)


class ConnectorService:
    """Service for a user's provider connectors."""

    @staticmethod
    async def upsert(
        session: AsyncSession,
        user_id: int,
        provider: ConnectorProvider,
        api_token: str,
        cipher: TokenCipher | None = None,
    ) -> Connector:
        """Store a provider token, replacing any earlier one for the same provider.

        Saving over a deactivated connector reactivates it.
        """
        cipher = cipher or get_token_cipher()
        encrypted = cipher.encrypt(api_token)

        connector = await ConnectorService.get(session, user_id, provider)
        if connector is None:
            connector = Connector(user_id=user_id, provider=provider, encrypted_token=encrypted)
            session.add(connector)
            logger.info(f"Connector {provider} created for user {user_id}")
        else:
            connector.encrypted_token = encrypted
            connector.is_active = True
            connector.updated_at = datetime.now(UTC)
            logger.info(f"Connector {provider} updated for user {user_id}")

        await session.flush()
        await session.refresh(connector)
        return connector

    @staticmethod
    async def list_for_user(session: AsyncSession, user_id: int) -> list[Connector]:
        """All of a user's connectors, newest first."""
        stmt = (
            select(Connector)
            .where(Connector.user_id == user_id)
            .order_by(Connector.created_at.desc(), Connector.id.desc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def get(session: AsyncSession, user_id: int, provider: ConnectorProvider) -> Connector | None:
        stmt = select(Connector).where(Connector.user_id == user_id, Connector.provider == provider)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_or_404(session: AsyncSession, user_id: int, provider: ConnectorProvider) -> Connector:
        connector = await ConnectorService.get(session, user_id, provider)
        if connector is None:
            raise ConnectorNotFound(provider)
        return connector

    @staticmethod
    async def deactivate(session: AsyncSession, user_id: int, provider: ConnectorProvider) -> Connector:
        """Soft delete: the row and its token stay, marked inactive.

        Raises:
            ConnectorNotFound: The user has no connector for this provider

        """
        connector = await ConnectorService.get_or_404(session, user_id, provider)
        connector.is_active = False
        connector.updated_at = datetime.now(UTC)
        await session.flush()
        logger.info(f"Connector {provider} deactivated for user {user_id}")
        return connector

    @staticmethod
    async def toggle(session: AsyncSession, user_id: int, provider: ConnectorProvider) -> Connector:
        """Flip a connector between active and inactive.

        Raises:
            ConnectorNotFound: The user has no connector for this provider

        """
        connector = await ConnectorService.get_or_404(session, user_id, provider)
        connector.is_active = not connector.is_active
        connector.updated_at = datetime.now(UTC)
        await session.flush()
        await session.refresh(connector)
        logger.info(f"Connector {provider} for user {user_id} is now {'active' if connector.is_active else 'inactive'}")
        return connector

    @staticmethod
    async def use_token(
        session: AsyncSession,
        user_id: int,
        provider: ConnectorProvider,
        cipher: TokenCipher | None = None,
        now: datetime | None = None,
    ) -> str:
        """Decrypt a connector's token for an outbound provider call and stamp last use.

        Raises:
            ConnectorNotFound: The user has no connector for this provider
            ConnectorInactive: The connector is deactivated
            ValueError: The stored token cannot be decrypted with the current key

        """
        connector = await ConnectorService.get_or_404(session, user_id, provider)
        if not connector.is_active:
            raise ConnectorInactive(provider)

        api_token = (cipher or get_token_cipher()).decrypt(connector.encrypted_token)
        connector.last_used_at = now or datetime.now(UTC)
        await session.flush()
        return api_token
