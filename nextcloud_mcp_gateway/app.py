import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Optional

from mcp.server.auth.settings import AuthSettings
from mcp.server.fastmcp import FastMCP
from mcp.server.transport_security import TransportSecuritySettings
from pydantic import AnyHttpUrl
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route

from nextcloud_mcp_gateway.auth.client_store import ClientStore
from nextcloud_mcp_gateway.auth.login import LoginHandler
from nextcloud_mcp_gateway.auth.login_form import LOGIN_PATH
from nextcloud_mcp_gateway.auth.oauth_routes import create_oauth_routes
from nextcloud_mcp_gateway.auth.provider import NextcloudOAuthProvider
from nextcloud_mcp_gateway.auth.rate_limit import RateLimitMiddleware
from nextcloud_mcp_gateway.auth.stores import CodeStore, RefreshStore
from nextcloud_mcp_gateway.auth.token_codec import TokenCodec
from nextcloud_mcp_gateway.config import Settings, get_settings
from nextcloud_mcp_gateway.config_validators import (
    AuthMode,
    get_mode_summary,
    require_valid_configuration,
)
from nextcloud_mcp_gateway.observability.metrics import setup_metrics

logger = logging.getLogger(__name__)

SERVER_NAME = "Nextcloud MCP"

ToolRegistrar = Callable[[FastMCP], None]


def create_provider(settings: Settings) -> NextcloudOAuthProvider:
    """Wire the authorization server components from configuration."""
    previous = [settings.auth_previous_secret] if settings.auth_previous_secret else []
    return NextcloudOAuthProvider(
        clients_store=ClientStore.from_settings(settings),
        token_codec=TokenCodec(settings.auth_secret, previous_secrets=previous),
        code_store=CodeStore(ttl_seconds=settings.auth_code_ttl),
        refresh_store=RefreshStore(ttl_seconds=settings.refresh_token_ttl),
        login_url=f"{settings.issuer_url}{LOGIN_PATH}",
    )


def create_mcp_server(
    settings: Settings, provider: Optional[NextcloudOAuthProvider] = None
) -> FastMCP:
    """Create the FastMCP server, gated by bearer tokens when a provider is given."""
    # Disable DNS rebinding protection for containerized deployments (k8s, Docker)
    transport_security = TransportSecuritySettings(
        enable_dns_rebinding_protection=False
    )
    if provider is None:
        return FastMCP(SERVER_NAME, transport_security=transport_security)

    return FastMCP(
        SERVER_NAME,
        token_verifier=provider,
        auth=AuthSettings(
            issuer_url=AnyHttpUrl(settings.issuer_url),
            resource_server_url=AnyHttpUrl(settings.mcp_server_url),
        ),
        transport_security=transport_security,
    )


def get_app(
    settings: Optional[Settings] = None,
    register_tools: Optional[ToolRegistrar] = None,
) -> Starlette:
    """Build the gateway ASGI application.

    Args:
        settings: Configuration; read from the environment when omitted
        register_tools: Called with the FastMCP server so tool modules can
            register their tools and resources

    Raises:
        ConfigurationError: If OAuth is enabled but misconfigured
    """
    if settings is None:
        settings = get_settings()

    if settings.metrics_enabled:
        setup_metrics(port=settings.metrics_port)
        logger.info(
            f"Prometheus metrics enabled on dedicated port {settings.metrics_port}"
        )

    routes: list[Route | Mount] = []
    provider: Optional[NextcloudOAuthProvider] = None

    if settings.auth_enabled:
        mode = require_valid_configuration(settings)
        logger.info(f"Configuring MCP gateway\n{get_mode_summary(mode)}")
        provider = create_provider(settings)
        login_handler = LoginHandler(
            provider,
            nextcloud_url=settings.nextcloud_url,
            timeout=settings.nextcloud_timeout,
        )
        routes.extend(create_oauth_routes(provider, settings, login_handler))
        logger.info(f"OAuth authorization server enabled (issuer: {settings.issuer_url})")
    else:
        mode = AuthMode.LOCAL
        logger.warning(
            "MCP_AUTH_ENABLED is not set - /mcp is served without authentication"
        )

    mcp = create_mcp_server(settings, provider)
    if register_tools is not None:
        register_tools(mcp)

    mcp_app = mcp.streamable_http_app()

    @asynccontextmanager
    async def starlette_lifespan(app: Starlette) -> AsyncIterator[None]:
        logger.info(f"Starting MCP gateway in {mode.value} mode")
        async with AsyncExitStack() as stack:
            await stack.enter_async_context(mcp.session_manager.run())
            yield
        logger.info("MCP gateway shutdown complete")

    def health_live(request: Request) -> JSONResponse:
        """Liveness check endpoint."""
        return JSONResponse({"status": "alive", "mode": mode.value})

    routes.append(Route("/health/live", health_live, methods=["GET"]))

    # Mount FastMCP at root last (catch-all, serves /mcp)
    routes.append(Mount("/", app=mcp_app))

    app = Starlette(routes=routes, lifespan=starlette_lifespan)
    app.state.settings = settings
    app.state.provider = provider
    app.state.mcp = mcp

    # Allow browser-based clients like MCP Inspector
    app.add_middleware(
        CORSMiddleware,  # type: ignore[invalid-argument-type]
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Mcp-Session-Id", "WWW-Authenticate"],
    )

    if provider is not None:
        app.add_middleware(RateLimitMiddleware)  # type: ignore[invalid-argument-type]
        logger.info("Rate limiting enabled on /oauth/* and /auth/login")

    return app
