"""Application settings and configuration."""

import base64
import binascii
import logging

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Known placeholder secrets that must never sign production tokens
INSECURE_SECRETS = {
    "secret",
    "changeme",
    "change-me",
    "password",
    "your-secret-key",
    "your-super-secret-key-change-in-production",
}


class OAuthClientConfig(BaseModel):
    """Registered OAuth2 client as read from the OAUTH_CLIENTS setting."""

    secret: str = Field(..., min_length=1)
    redirect_uris: list[str] = Field(default_factory=list)
    scopes: list[str] | None = None
    name: str | None = None


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application (hardcoded constants)
    app_name: str = "Shelfkeeper API"
    app_version: str = "0.1.0"

    # Environment-specific settings
    debug: bool = False
    environment: str  # development, staging, production

    # Database
    database_url: str
    database_pool_size: int = 10
    database_max_overflow: int = 20
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    database_echo: bool = False

    # API
    api_prefix: str = "/api"

    # CORS (comma separated origins, empty disables the middleware)
    cors_allow_origins: str = ""

    # Signed tokens
    secret_key: str
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60
    refresh_token_expire_days: int = 7

    # OAuth2 authorization code flow
    oauth_access_token_expire_hours: int = 24
    authorization_code_expire_minutes: int = 10
    oauth_client_id: str | None = None
    oauth_client_secret: str | None = None
    oauth_redirect_uris: str = ""
    oauth_clients: dict[str, OAuthClientConfig] = Field(default_factory=dict)

    # Connector vault (base64 of 32 random bytes)
    encryption_key: str

    # Rate limiting
    rate_limit_enabled: bool = True
    login_rate_limit: str = "10/minute"
    token_rate_limit: str = "30/minute"

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        valid_envs = {"development", "staging", "production", "testing"}
        env = str(v).lower()
        if env not in valid_envs:
            raise ValueError(f"Environment must be one of {valid_envs}, got {env}")
        return env

    @field_validator("encryption_key")
    @classmethod
    def validate_encryption_key(cls, v: str) -> str:
        """Require a base64-encoded 256-bit key for connector token encryption."""
        try:
            key = base64.b64decode(v, validate=True)
        except binascii.Error as err:
            raise ValueError("ENCRYPTION_KEY must be base64 encoded") from err
        if len(key) != 32:
            raise ValueError(f"ENCRYPTION_KEY must decode to 32 bytes (got {len(key)})")
        return v

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        """Reject placeholder and short signing secrets.

        HS256 keys shorter than 32 bytes are brute-forceable offline from any
        issued token.
        """
        if v.lower() in INSECURE_SECRETS:
            raise ValueError("SECRET_KEY is set to an insecure placeholder value")
        if len(v) < 32:
            raise ValueError(f"SECRET_KEY must be at least 32 characters long (got {len(v)})")
        return v

    @property
    def access_token_expire_seconds(self) -> int:
        return self.access_token_expire_minutes * 60

    @property
    def oauth_access_token_expire_seconds(self) -> int:
        return self.oauth_access_token_expire_hours * 3600

    def get_cors_origins(self) -> list[str]:
        """Split CORS_ALLOW_ORIGINS into a list, dropping blanks."""
        return [origin.strip() for origin in self.cors_allow_origins.split(",") if origin.strip()]

    def get_oauth_clients(self) -> dict[str, OAuthClientConfig]:
        """Merge OAUTH_CLIENTS with the single-client OAUTH_CLIENT_ID shorthand.

        An entry in OAUTH_CLIENTS wins over the shorthand for the same id.
        """
        clients: dict[str, OAuthClientConfig] = {}
        if self.oauth_client_id and self.oauth_client_secret:
            redirect_uris = [uri.strip() for uri in self.oauth_redirect_uris.split(",") if uri.strip()]
            clients[self.oauth_client_id] = OAuthClientConfig(
                secret=self.oauth_client_secret,
                redirect_uris=redirect_uris,
            )
        elif self.oauth_client_id:
            logger.warning("OAUTH_CLIENT_ID is set without OAUTH_CLIENT_SECRET; client ignored")
        clients.update(self.oauth_clients)
        return clients


settings = Settings()  # type: ignore[call-arg]
