"""Authentication exceptions."""

from fastapi import HTTPException, status


class AuthenticationException(HTTPException):
    """Base authentication exception (401)."""

    def __init__(self, detail: str = "Authentication failed"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class InvalidCredentialsException(AuthenticationException):
    """Raised when username or password is incorrect."""

    def __init__(self):
        super().__init__(detail="Invalid credentials")


class UnauthenticatedException(AuthenticationException):
    """Raised by the request authenticator for any unusable bearer credential.

    Missing header, bad signature, unknown, expired and revoked tokens all
    map to this single response.
    """

    def __init__(self):
        super().__init__(detail="Could not validate credentials")


class InvalidTokenException(AuthenticationException):
    """Raised when a signed token fails verification."""

    def __init__(self, detail: str = "Invalid or expired token"):
        super().__init__(detail=detail)


class InvalidSignatureException(InvalidTokenException):
    """Raised when the token signature does not match the signing secret."""

    def __init__(self):
        super().__init__(detail="Invalid token signature")


class MalformedTokenException(InvalidTokenException):
    """Raised when the token structure or its claims cannot be parsed."""

    def __init__(self):
        super().__init__(detail="Malformed token")


class TokenExpiredException(InvalidTokenException):
    """Raised when the token has expired."""

    def __init__(self):
        super().__init__(detail="Token has expired")


class WrongTokenKindException(InvalidTokenException):
    """Raised when a refresh token is presented where an access token is expected, or vice versa."""

    def __init__(self, expected: str = "access"):
        super().__init__(detail=f"Invalid token type, expected {expected}")
        self.expected = expected


class RefreshTokenRevokedException(InvalidTokenException):
    """Raised when a refresh token is unknown, rotated out or revoked."""

    def __init__(self):
        super().__init__(detail="Refresh token not found or revoked")


class InsufficientScopeException(HTTPException):
    """Raised when an authenticated credential lacks the scope or ownership for an action."""

    def __init__(self, detail: str = "Insufficient scope"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
