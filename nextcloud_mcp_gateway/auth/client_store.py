"""
Registry of OAuth clients allowed to use the authorization server.

Clients come from three composable sources:
1. A fixed list passed at construction
2. The operator-configured client (MCP_CLIENT_ID / MCP_CLIENT_SECRET)
3. Dynamic Client Registration (RFC 7591), only when enabled

When registration is disabled the store has no ``register_client`` attribute
at all, so callers detect the capability by its presence rather than by a
runtime error.
"""

import logging
import threading
import time
from typing import Iterable, Optional, Protocol, runtime_checkable

from nextcloud_mcp_gateway.auth.models import (
    SUPPORTED_GRANT_TYPES,
    SUPPORTED_RESPONSE_TYPES,
    OAuthClient,
)
from nextcloud_mcp_gateway.config import Settings

logger = logging.getLogger(__name__)


@runtime_checkable
class SupportsRegistration(Protocol):
    """A client store that accepts dynamic registrations."""

    def register_client(self, client: OAuthClient) -> OAuthClient: ...


class ClientStore:
    """Read-only registry of statically known clients."""

    def __init__(self, clients: Optional[Iterable[OAuthClient]] = None):
        self._lock = threading.Lock()
        self._clients: dict[str, OAuthClient] = {}
        for client in clients or []:
            self._clients[client.client_id] = client
            logger.info(f"Registered static client: {client.client_id}")

    def get_client(self, client_id: str) -> Optional[OAuthClient]:
        with self._lock:
            return self._clients.get(client_id)

    def list_clients(self) -> list[OAuthClient]:
        with self._lock:
            return list(self._clients.values())

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClientStore":
        """Build the store from configuration.

        Returns a RegistrableClientStore when MCP_REGISTRATION_ENABLED is set.
        """
        preseeded: list[OAuthClient] = []
        if settings.mcp_client_id and settings.mcp_client_secret:
            preseeded.append(
                OAuthClient(
                    client_id=settings.mcp_client_id,
                    client_secret=settings.mcp_client_secret,
                    client_id_issued_at=int(time.time()),
                    client_secret_expires_at=0,
                    redirect_uris=list(settings.mcp_client_redirect_uris) or None,
                    token_endpoint_auth_method="client_secret_post",
                    grant_types=list(SUPPORTED_GRANT_TYPES),
                    response_types=list(SUPPORTED_RESPONSE_TYPES),
                    client_name="Pre-seeded client",
                )
            )
        elif settings.mcp_client_id or settings.mcp_client_secret:
            logger.warning(
                "Only one of MCP_CLIENT_ID / MCP_CLIENT_SECRET is set; "
                "no pre-seeded client will be registered"
            )

        if settings.registration_enabled:
            logger.info("Dynamic client registration enabled")
            return RegistrableClientStore(clients=preseeded)
        return cls(clients=preseeded)


class RegistrableClientStore(ClientStore):
    """Client store that also supports Dynamic Client Registration."""

    MAX_CLIENTS = 100

    def __init__(
        self,
        clients: Optional[Iterable[OAuthClient]] = None,
        max_clients: Optional[int] = None,
    ):
        super().__init__(clients)
        self.max_clients = max_clients or self.MAX_CLIENTS
        self._registered_count = 0

    def register_client(self, client: OAuthClient) -> OAuthClient:
        """Store a dynamically registered client.

        The id, issue timestamp and secret are assigned by the registration
        endpoint before the client reaches the store.

        Raises:
            ValueError: If the registration limit has been reached
        """
        with self._lock:
            if self._registered_count >= self.max_clients:
                logger.warning(
                    f"Client registration limit reached ({self.max_clients}), "
                    "rejecting registration"
                )
                raise ValueError("Maximum number of registered clients reached")
            self._clients[client.client_id] = client
            self._registered_count += 1

        logger.info(
            f"Dynamically registered client: {client.client_id} "
            f"({client.client_name or 'unnamed'})"
        )
        return client
