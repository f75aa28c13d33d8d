"""OAuth2 protocol exceptions.

Each exception carries the RFC 6749 ``error`` code; the handler registered in
``main`` renders them as ``{"error": ..., "error_description": ...}``.
"""

from fastapi import HTTPException, status


class OAuthException(HTTPException):
    """Base OAuth2 protocol error."""

    error: str = "invalid_request"

    def __init__(
        self,
        description: str,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(status_code=status_code, detail=description, headers=headers)

    def to_body(self) -> dict[str, str]:
        return {"error": self.error, "error_description": str(self.detail)}


class InvalidRequestException(OAuthException):
    """Raised when a required parameter is missing or malformed."""

    error = "invalid_request"


class UnsupportedResponseTypeException(OAuthException):
    error = "unsupported_response_type"

    def __init__(self):
        super().__init__("Only response_type=code is supported")


class UnknownClientException(OAuthException):
    """Raised by the authorize endpoint for an empty or unregistered client_id."""

    error = "invalid_request"

    def __init__(self):
        super().__init__("Unknown client_id")


class InvalidRedirectUriException(OAuthException):
    error = "invalid_request"

    def __init__(self, description: str = "Invalid redirect_uri"):
        super().__init__(description)


class InvalidScopeException(OAuthException):
    error = "invalid_scope"

    def __init__(self):
        super().__init__("Requested scope is unknown or not allowed for this client")


class InvalidClientException(OAuthException):
    """Raised when client authentication fails at the token endpoint (401)."""

    error = "invalid_client"

    def __init__(self):
        super().__init__(
            "Client authentication failed",
            status_code=status.HTTP_401_UNAUTHORIZED,
            headers={"WWW-Authenticate": "Basic"},
        )


class InvalidGrantException(OAuthException):
    """Raised for unknown, expired, already used or mismatched authorization codes.

    All causes share one response so callers cannot learn why a code was refused.
    """

    error = "invalid_grant"

    def __init__(self):
        super().__init__("Authorization code is invalid, expired or already used")


class UnsupportedGrantTypeException(OAuthException):
    error = "unsupported_grant_type"

    def __init__(self):
        super().__init__("Only grant_type=authorization_code is supported")
