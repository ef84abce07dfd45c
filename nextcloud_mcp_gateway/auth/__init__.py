"""Embedded OAuth 2.1 authorization server for the Nextcloud MCP gateway."""

from .client_store import ClientStore, RegistrableClientStore, SupportsRegistration
from .errors import ConfigurationError, InvalidTokenError
from .login import LoginHandler
from .login_form import render_login_form
from .oauth_routes import create_oauth_routes
from .provider import NextcloudOAuthProvider
from .stores import CodeStore, RefreshStore
from .token_codec import TokenCodec

__all__ = [
    "ClientStore",
    "RegistrableClientStore",
    "SupportsRegistration",
    "CodeStore",
    "RefreshStore",
    "TokenCodec",
    "NextcloudOAuthProvider",
    "LoginHandler",
    "render_login_form",
    "create_oauth_routes",
    "InvalidTokenError",
    "ConfigurationError",
]
