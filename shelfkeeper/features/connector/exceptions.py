"""Connector-related exceptions."""

from fastapi import HTTPException, status


class ConnectorException(HTTPException):
    """Base connector exception."""

    def __init__(self, detail: str = "Connector operation failed", status_code: int = status.HTTP_400_BAD_REQUEST):
        super().__init__(status_code=status_code, detail=detail)


class ConnectorNotFound(ConnectorException):
    """Raised when the user has no connector for a provider."""

    def __init__(self, provider: str):
        super().__init__(detail=f"Connector '{provider}' not found", status_code=status.HTTP_404_NOT_FOUND)


class ConnectorInactive(ConnectorException):
    """Raised when a deactivated connector's token is requested."""

    def __init__(self, provider: str):
        super().__init__(detail=f"Connector '{provider}' is disabled", status_code=status.HTTP_409_CONFLICT)
