"""Authentication schemas (DTOs)."""

from pydantic import BaseModel, Field

from shelfkeeper.features.user.schemas import UserResponse


# Request schemas
class UserLoginRequest(BaseModel):
    """Login request. ``username`` also accepts the account's email address."""

    username: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)


class RefreshTokenRequest(BaseModel):
    """Refresh token request."""

    refresh_token: str = Field(..., min_length=1)


# Response schemas
class TokenResponse(BaseModel):
    """JWT token pair response."""

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int  # seconds
    user: UserResponse


class MessageResponse(BaseModel):
    message: str
