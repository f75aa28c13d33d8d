"""Connector models: per-user AI provider API tokens, stored encrypted."""

from datetime import datetime
from enum import StrEnum

from sqlalchemy import Boolean, Enum, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from shelfkeeper.database.base import Base, TimestampMixin, UTCDateTime


class ConnectorProvider(StrEnum):
    """AI providers a user can connect."""

    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    CHATGPT = "chatgpt"


class Connector(Base, TimestampMixin):
    """A user's API token for one provider.

    At most one row exists per (user, provider); saving again replaces the
    token. Deleting only deactivates the row.
    """

    __tablename__ = "connectors"
    __table_args__ = (UniqueConstraint("user_id", "provider", name="uq_connectors_user_provider"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    provider: Mapped[ConnectorProvider] = mapped_column(
        Enum(ConnectorProvider, native_enum=False, length=50, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )

    # base64(nonce || ciphertext || tag), never returned by the API
    encrypted_token: Mapped[str] = mapped_column(Text, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_used_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
