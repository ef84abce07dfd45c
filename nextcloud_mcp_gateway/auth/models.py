"""Data model for OAuth clients, authorization codes and tokens."""

import time
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse

from mcp.server.auth.provider import AccessToken, AuthorizationCode, RefreshToken
from mcp.shared.auth import InvalidRedirectUriError, OAuthClientInformationFull
from pydantic import AnyUrl

SUPPORTED_GRANT_TYPES = ["authorization_code", "refresh_token"]
SUPPORTED_RESPONSE_TYPES = ["code"]
SUPPORTED_AUTH_METHODS = ["client_secret_post", "client_secret_basic", "none"]


def is_absolute_http_url(value: str) -> bool:
    """Return True for http(s) URLs with a host and no fragment."""
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return False
    return not parsed.fragment


class OAuthClient(OAuthClientInformationFull):
    """A registered OAuth client.

    Differs from the SDK record in two ways: a client registered without
    redirect URIs (the operator-configured client) accepts any absolute
    http(s) URI, and a client registered without a scope may request any.
    """

    redirect_uris: Optional[list[AnyUrl]] = None  # type: ignore[assignment]

    def validate_redirect_uri(self, redirect_uri: Optional[AnyUrl]) -> AnyUrl:
        if self.redirect_uris:
            return super().validate_redirect_uri(redirect_uri)
        if redirect_uri is None:
            raise InvalidRedirectUriError("redirect_uri is required for this client")
        if not is_absolute_http_url(str(redirect_uri)):
            raise InvalidRedirectUriError("redirect_uri must be an absolute http(s) URL")
        return redirect_uri

    def validate_scope(self, requested_scope: Optional[str]) -> Optional[list[str]]:
        if requested_scope is None:
            return None
        if self.scope is None:
            return requested_scope.split()
        return super().validate_scope(requested_scope)


@dataclass
class IssuedCode:
    """Redemption context recorded for an issued authorization code."""

    pkce_challenge: str
    client_id: str
    scopes: list[str]
    redirect_uri: str
    user_id: str
    state: Optional[str] = None
    issued_at: float = field(default_factory=time.time)


@dataclass
class RefreshTokenGrant:
    """Grant context recorded for an issued refresh token."""

    user_id: str
    client_id: str
    scopes: list[str] = field(default_factory=list)
    issued_at: float = field(default_factory=time.time)


class NextcloudAuthorizationCode(AuthorizationCode):
    """Authorization code as handed to the SDK token handler."""

    user_id: str
    state: Optional[str] = None


class NextcloudRefreshToken(RefreshToken):
    user_id: str


class NextcloudAccessToken(AccessToken):
    """Verified access token, carrying the Nextcloud user it was issued for."""

    user_id: Optional[str] = None
