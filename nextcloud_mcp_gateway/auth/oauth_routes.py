"""
OAuth 2.1 HTTP endpoints of the embedded authorization server.

The protocol handlers come from the MCP SDK and are mounted on our own
routes so that every endpoint lives under /oauth:

- GET  /.well-known/oauth-authorization-server     RFC 8414 metadata
- GET  /.well-known/oauth-protected-resource[/mcp] RFC 9728 metadata
- GET|POST /oauth/authorize                        redirects to the login form
- GET|POST /auth/login                             Nextcloud credential check
- POST /oauth/token                                code and refresh grants
- POST /oauth/register                             RFC 7591 (only when enabled)
- POST /oauth/revoke                               RFC 7009
"""

import logging

from mcp.server.auth.handlers.authorize import AuthorizationHandler
from mcp.server.auth.handlers.metadata import (
    MetadataHandler,
    ProtectedResourceMetadataHandler,
)
from mcp.server.auth.handlers.register import RegistrationHandler
from mcp.server.auth.handlers.revoke import RevocationHandler
from mcp.server.auth.handlers.token import TokenHandler
from mcp.server.auth.middleware.client_auth import ClientAuthenticator
from mcp.server.auth.routes import build_metadata
from mcp.server.auth.settings import ClientRegistrationOptions, RevocationOptions
from mcp.shared.auth import OAuthMetadata, ProtectedResourceMetadata
from pydantic import AnyHttpUrl
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from nextcloud_mcp_gateway.auth.client_store import SupportsRegistration
from nextcloud_mcp_gateway.auth.login import LoginHandler
from nextcloud_mcp_gateway.auth.login_form import LOGIN_PATH
from nextcloud_mcp_gateway.auth.models import SUPPORTED_AUTH_METHODS
from nextcloud_mcp_gateway.auth.provider import NextcloudOAuthProvider
from nextcloud_mcp_gateway.config import Settings
from nextcloud_mcp_gateway.observability.metrics import (
    oauth_clients_registered_total,
    record_token_grant,
)

logger = logging.getLogger(__name__)

AUTHORIZE_PATH = "/oauth/authorize"
TOKEN_PATH = "/oauth/token"
REGISTER_PATH = "/oauth/register"
REVOKE_PATH = "/oauth/revoke"

NO_STORE_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache"}


def build_server_metadata(issuer: str, registration_enabled: bool) -> OAuthMetadata:
    """Authorization server metadata (RFC 8414) pointing at the /oauth endpoints."""
    metadata = build_metadata(
        issuer_url=AnyHttpUrl(issuer),
        service_documentation_url=None,
        client_registration_options=ClientRegistrationOptions(
            enabled=registration_enabled
        ),
        revocation_options=RevocationOptions(enabled=True),
    )
    return metadata.model_copy(
        update={
            "authorization_endpoint": AnyHttpUrl(f"{issuer}{AUTHORIZE_PATH}"),
            "token_endpoint": AnyHttpUrl(f"{issuer}{TOKEN_PATH}"),
            "registration_endpoint": (
                AnyHttpUrl(f"{issuer}{REGISTER_PATH}") if registration_enabled else None
            ),
            "revocation_endpoint": AnyHttpUrl(f"{issuer}{REVOKE_PATH}"),
            "token_endpoint_auth_methods_supported": list(SUPPORTED_AUTH_METHODS),
            "revocation_endpoint_auth_methods_supported": list(SUPPORTED_AUTH_METHODS),
        }
    )


class OAuthEndpoints:
    """SDK handlers bound to one provider, plus the metrics around them."""

    def __init__(self, provider: NextcloudOAuthProvider, settings: Settings):
        self.provider = provider
        self.issuer = settings.issuer_url
        self.registration_enabled = isinstance(
            provider.clients_store, SupportsRegistration
        )

        client_authenticator = ClientAuthenticator(provider)
        self.metadata = MetadataHandler(
            build_server_metadata(self.issuer, self.registration_enabled)
        )
        self.protected_resource_metadata = ProtectedResourceMetadataHandler(
            ProtectedResourceMetadata(
                resource=AnyHttpUrl(settings.mcp_server_url),
                authorization_servers=[AnyHttpUrl(self.issuer)],
            )
        )
        self.authorization = AuthorizationHandler(provider)
        self.token_handler = TokenHandler(provider, client_authenticator)
        self.registration = RegistrationHandler(
            provider, ClientRegistrationOptions(enabled=self.registration_enabled)
        )
        self.revocation = RevocationHandler(provider, client_authenticator)

    async def token(self, request: Request) -> Response:
        """Token endpoint for the authorization_code and refresh_token grants."""
        form = await request.form()
        grant_type = form.get("grant_type")
        if not isinstance(grant_type, str) or not grant_type:
            grant_type = "unknown"

        try:
            response = await self.token_handler.handle(request)
        except Exception:
            logger.exception("[token] Unexpected error in token endpoint")
            record_token_grant(grant_type, "error")
            return JSONResponse(
                {"error": "server_error", "error_description": "Internal server error"},
                status_code=500,
                headers=NO_STORE_HEADERS,
            )

        record_token_grant(
            grant_type, "success" if response.status_code == 200 else "rejected"
        )
        return response

    async def register(self, request: Request) -> Response:
        """Dynamic client registration (RFC 7591)."""
        response = await self.registration.handle(request)
        status = "success" if response.status_code == 201 else "rejected"
        oauth_clients_registered_total.labels(status=status).inc()
        return response


def create_oauth_routes(
    provider: NextcloudOAuthProvider,
    settings: Settings,
    login_handler: LoginHandler,
) -> list[Route]:
    """Build the authorization server routes.

    /oauth/register is only included when the client store supports
    registration.
    """
    endpoints = OAuthEndpoints(provider, settings)
    routes = [
        Route(
            "/.well-known/oauth-authorization-server",
            endpoints.metadata.handle,
            methods=["GET"],
        ),
        Route(
            "/.well-known/oauth-protected-resource",
            endpoints.protected_resource_metadata.handle,
            methods=["GET"],
        ),
        Route(
            "/.well-known/oauth-protected-resource/mcp",
            endpoints.protected_resource_metadata.handle,
            methods=["GET"],
        ),
        Route(
            AUTHORIZE_PATH, endpoints.authorization.handle, methods=["GET", "POST"]
        ),
        Route(LOGIN_PATH, login_handler.show, methods=["GET"]),
        Route(LOGIN_PATH, login_handler.handle, methods=["POST"]),
        Route(TOKEN_PATH, endpoints.token, methods=["POST"]),
        Route(REVOKE_PATH, endpoints.revocation.handle, methods=["POST"]),
    ]
    if endpoints.registration_enabled:
        routes.append(Route(REGISTER_PATH, endpoints.register, methods=["POST"]))
        logger.info("Dynamic client registration endpoint enabled at /oauth/register")
    return routes
