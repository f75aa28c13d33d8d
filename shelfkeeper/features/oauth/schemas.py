"""OAuth2 schemas (DTOs).

Request fields are optional at the schema level so that missing parameters
surface as OAuth ``invalid_request`` errors rather than generic 422s.
"""

from datetime import datetime

from pydantic import BaseModel


# Request schemas
class AuthorizeRequest(BaseModel):
    """Query parameters of the authorize endpoint."""

    client_id: str | None = None
    redirect_uri: str | None = None
    response_type: str | None = None
    scope: str | None = None
    state: str | None = None


class TokenRequest(BaseModel):
    """Authorization code exchange request."""

    grant_type: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    code: str | None = None
    redirect_uri: str | None = None


class RevokeRequest(BaseModel):
    """Client-initiated revocation of an opaque access token."""

    client_id: str | None = None
    client_secret: str | None = None
    token: str | None = None


# Response schemas
class AuthorizeResponse(BaseModel):
    code: str
    state: str | None = None


class TokenResponse(BaseModel):
    """Result of a successful code exchange.

    ``access_token`` is the opaque registry token; ``jwt_token`` is the signed
    access token presented as the bearer credential.
    """

    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    scope: str
    jwt_token: str


class IssuedTokenResponse(BaseModel):
    """Audit view of an issued token; never includes token material."""

    id: int
    client_id: str
    scope: str
    created_at: datetime
    expires_at: datetime
    last_used_at: datetime | None = None
    revoked_at: datetime | None = None

    model_config = {"from_attributes": True}


class RevocationResponse(BaseModel):
    revoked: int
