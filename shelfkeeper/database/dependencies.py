"""Database dependencies."""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from shelfkeeper.database.client import get_session


async def get_db_session() -> AsyncGenerator[AsyncSession]:
    """Get a request-scoped database session.

    The session commits when the request handler returns normally and rolls
    back if it raises.
    """
    async with get_session() as session:
        yield session
