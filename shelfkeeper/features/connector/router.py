"""Connector router: the signed-in user's AI provider tokens."""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from shelfkeeper.database.dependencies import get_db_session
from shelfkeeper.features.auth.dependencies import AuthContext, require_first_party

from .models import ConnectorProvider
from .schemas import ConnectorResponse, ConnectorUpsertRequest
from .service import ConnectorService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/connectors", tags=["Connectors"])


@router.post("", response_model=ConnectorResponse, status_code=status.HTTP_201_CREATED)
async def upsert_connector(
    data: ConnectorUpsertRequest,
    context: AuthContext = Depends(require_first_party),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a connector or replace its token. The token is never echoed back."""
    connector = await ConnectorService.upsert(session, context.user_id, data.provider, data.api_token)
    await session.commit()
    return ConnectorResponse.model_validate(connector)


@router.get("", response_model=list[ConnectorResponse])
async def list_connectors(
    context: AuthContext = Depends(require_first_party),
    session: AsyncSession = Depends(get_db_session),
):
    connectors = await ConnectorService.list_for_user(session, context.user_id)
    return [ConnectorResponse.model_validate(c) for c in connectors]


@router.get("/{provider}", response_model=ConnectorResponse)
async def get_connector(
    provider: ConnectorProvider,
    context: AuthContext = Depends(require_first_party),
    session: AsyncSession = Depends(get_db_session),
):
    connector = await ConnectorService.get_or_404(session, context.user_id, provider)
    return ConnectorResponse.model_validate(connector)


@router.delete("/{provider}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_connector(
    provider: ConnectorProvider,
    context: AuthContext = Depends(require_first_party),
    session: AsyncSession = Depends(get_db_session),
):
    """Deactivate a connector. The stored token is kept."""
    await ConnectorService.deactivate(session, context.user_id, provider)
    await session.commit()


@router.patch("/{provider}/toggle", response_model=ConnectorResponse)
async def toggle_connector(
    provider: ConnectorProvider,
    context: AuthContext = Depends(require_first_party),
    session: AsyncSession = Depends(get_db_session),
):
    connector = await ConnectorService.toggle(session, context.user_id, provider)
    await session.commit()
    return ConnectorResponse.model_validate(connector)
