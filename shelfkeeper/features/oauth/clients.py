"""Registry of confidential OAuth2 clients, built from configuration at startup."""

import logging
import secrets
from dataclasses import dataclass, field
from functools import lru_cache
from urllib.parse import urlsplit

from shelfkeeper.config.settings import OAuthClientConfig, settings

logger = logging.getLogger(__name__)

SCOPE_ALL = "all"
SCOPE_READ = "read"
SCOPE_WRITE = "write"
KNOWN_SCOPES = frozenset({SCOPE_ALL, SCOPE_READ, SCOPE_WRITE})
DEFAULT_SCOPE = SCOPE_ALL


def parse_scope(scope: str | None) -> list[str]:
    """Split a space-delimited scope string, keeping first-seen order."""
    if not scope:
        return []
    return list(dict.fromkeys(scope.split()))


def is_absolute_uri(uri: str) -> bool:
    """True if ``uri`` has a scheme and a network location and no fragment."""
    try:
        parts = urlsplit(uri)
    except ValueError:
        return False
    return bool(parts.scheme and parts.netloc) and not parts.fragment


@dataclass(frozen=True)
class OAuthClient:
    """A registered confidential client."""

    client_id: str
    secret: str = field(repr=False)
    redirect_uris: tuple[str, ...] = ()
    scopes: frozenset[str] = KNOWN_SCOPES
    name: str | None = None

    def check_secret(self, presented: str) -> bool:
        """Compare the presented secret in constant time."""
        return secrets.compare_digest(self.secret.encode("utf-8"), presented.encode("utf-8"))

    def allows_redirect_uri(self, uri: str) -> bool:
        """Exact-match the redirect URI against the allow-list."""
        return uri in self.redirect_uris

    def allows_scope(self, requested: list[str]) -> bool:
        return all(scope in KNOWN_SCOPES and scope in self.scopes for scope in requested)

    def default_scopes(self) -> list[str]:
        """Scopes granted when a request names none: `all` if permitted, else everything permitted."""
        if DEFAULT_SCOPE in self.scopes:
            return [DEFAULT_SCOPE]
        return sorted(self.scopes & KNOWN_SCOPES)


class ClientRegistry:
    """Lookup-and-validate access to the configured clients."""

    def __init__(self, clients: dict[str, OAuthClientConfig]):
        self._clients = {
            client_id: OAuthClient(
                client_id=client_id,
                secret=config.secret,
                redirect_uris=tuple(config.redirect_uris),
                scopes=frozenset(config.scopes) if config.scopes is not None else KNOWN_SCOPES,
                name=config.name,
            )
            for client_id, config in clients.items()
        }
        for client in self._clients.values():
            if not client.redirect_uris:
                logger.warning(f"OAuth client {client.client_id} has no allowed redirect URIs configured")

    def __contains__(self, client_id: str) -> bool:
        return client_id in self._clients

    def __len__(self) -> int:
        return len(self._clients)

    def get(self, client_id: str | None) -> OAuthClient | None:
        if not client_id:
            return None
        return self._clients.get(client_id)

    def authenticate(self, client_id: str | None, client_secret: str | None) -> OAuthClient | None:
        """Return the client if the id is registered and the secret matches.

        An unknown client id still costs one constant-time comparison so that
        response timing does not reveal which ids exist.
        """
        client = self.get(client_id)
        presented = client_secret or ""
        if client is None:
            secrets.compare_digest(presented.encode("utf-8"), presented.encode("utf-8"))
            return None
        if not client.check_secret(presented):
            return None
        return client


@lru_cache
def get_client_registry() -> ClientRegistry:
    """Build the registry once from settings."""
    registry = ClientRegistry(settings.get_oauth_clients())
    logger.info(f"Loaded {len(registry)} OAuth client(s)")
    return registry
