"""Connector schemas (DTOs)."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from .models import ConnectorProvider


# Request schemas
class ConnectorUpsertRequest(BaseModel):
    """Create a connector, or replace the token of an existing one."""

    provider: ConnectorProvider
    api_token: str = Field(..., min_length=1, max_length=4096)

    @field_validator("api_token")
    @classmethod
    def token_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("API token cannot be empty")
        return value


# Response schemas
class ConnectorResponse(BaseModel):
    """Connector as shown to its owner; the token itself is never included."""

    id: int
    provider: ConnectorProvider
    is_active: bool
    last_used_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
