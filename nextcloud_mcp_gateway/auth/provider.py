"""OAuth 2.1 authorization server provider for MCP clients.

Implements the MCP SDK ``OAuthAuthorizationServerProvider`` protocol for the
authorization-code grant (with PKCE) and the refresh-token grant on behalf of
Nextcloud users:

1. MCP client discovers endpoints via /.well-known/oauth-authorization-server
2. MCP client redirects the user to /oauth/authorize, which validates the
   request and forwards the browser to the Nextcloud login form
3. /auth/login verifies the credentials against Nextcloud and calls
   issue_auth_code(); the user is redirected back with the code
4. MCP client exchanges code + PKCE verifier for tokens at /oauth/token
5. MCP client sends the JWT access token as Bearer on every /mcp request
6. Refresh tokens rotate on every use and can be revoked at /oauth/revoke

Request parsing, client authentication, PKCE and redirect checks are done by
the SDK handlers; this class owns the stores and the token format.

Codes and refresh tokens live in memory and are lost on restart. Access
tokens stay verifiable as long as the signing secret is unchanged.
"""

import logging
from typing import Optional

from mcp.server.auth.provider import (
    AccessToken,
    AuthorizationParams,
    OAuthAuthorizationServerProvider,
    RefreshToken,
    RegistrationError,
    TokenError,
    construct_redirect_uri,
)
from mcp.shared.auth import OAuthClientInformationFull, OAuthToken
from pydantic import AnyUrl

from nextcloud_mcp_gateway.auth.client_store import ClientStore, SupportsRegistration
from nextcloud_mcp_gateway.auth.errors import ConfigurationError, InvalidTokenError
from nextcloud_mcp_gateway.auth.login_form import LOGIN_PATH
from nextcloud_mcp_gateway.auth.models import (
    IssuedCode,
    NextcloudAccessToken,
    NextcloudAuthorizationCode,
    NextcloudRefreshToken,
    OAuthClient,
    RefreshTokenGrant,
)
from nextcloud_mcp_gateway.auth.stores import CodeStore, RefreshStore
from nextcloud_mcp_gateway.auth.token_codec import TokenCodec
from nextcloud_mcp_gateway.observability.metrics import (
    oauth_authorization_codes_issued_total,
    oauth_token_revocations_total,
    record_token_validation,
)

logger = logging.getLogger(__name__)


class NextcloudOAuthProvider(
    OAuthAuthorizationServerProvider[
        NextcloudAuthorizationCode, NextcloudRefreshToken, NextcloudAccessToken
    ]
):
    """Authorization server backed by in-memory code and refresh stores.

    Also serves as the MCP SDK ``TokenVerifier`` for the /mcp endpoint.
    """

    def __init__(
        self,
        clients_store: ClientStore,
        token_codec: TokenCodec,
        code_store: Optional[CodeStore] = None,
        refresh_store: Optional[RefreshStore] = None,
        login_url: str = LOGIN_PATH,
    ):
        """
        Args:
            clients_store: Registry of known clients
            token_codec: Signs and verifies access tokens
            code_store: Pending authorization codes
            refresh_store: Active refresh tokens
            login_url: Where /oauth/authorize sends the browser to sign in
        """
        self._clients_store = clients_store
        self.token_codec = token_codec
        self.code_store = code_store if code_store is not None else CodeStore()
        self.refresh_store = (
            refresh_store if refresh_store is not None else RefreshStore()
        )
        self.login_url = login_url

    @property
    def clients_store(self) -> ClientStore:
        return self._clients_store

    async def get_client(self, client_id: str) -> Optional[OAuthClient]:
        return self._clients_store.get_client(client_id)

    async def register_client(self, client_info: OAuthClientInformationFull) -> None:
        store = self._clients_store
        if not isinstance(store, SupportsRegistration):
            raise RegistrationError(
                error="invalid_client_metadata",
                error_description="Dynamic client registration is disabled",
            )
        client = OAuthClient.model_validate(client_info.model_dump())
        try:
            store.register_client(client)
        except ValueError as e:
            raise RegistrationError(
                error="invalid_client_metadata", error_description=str(e)
            ) from e

    async def authorize(
        self, client: OAuthClientInformationFull, params: AuthorizationParams
    ) -> str:
        """Return the login page URL for a validated authorization request.

        No code is issued here; that happens once the login succeeds.
        """
        return construct_redirect_uri(
            self.login_url,
            client_id=client.client_id,
            redirect_uri=str(params.redirect_uri),
            code_challenge=params.code_challenge,
            state=params.state,
            scope=" ".join(params.scopes) if params.scopes else None,
        )

    def issue_auth_code(
        self,
        pkce_challenge: str,
        client_id: str,
        scopes: list[str],
        redirect_uri: str,
        user_id: str,
        state: Optional[str] = None,
    ) -> str:
        """Record a single-use authorization code after a successful login."""
        code = self.code_store.store(
            IssuedCode(
                pkce_challenge=pkce_challenge,
                client_id=client_id,
                scopes=list(scopes),
                redirect_uri=redirect_uri,
                user_id=user_id,
                state=state,
            )
        )
        oauth_authorization_codes_issued_total.inc()
        logger.info(f"[authorize] Issued authorization code for {user_id} ({client_id})")
        return code

    async def challenge_for_authorization_code(
        self, client: OAuthClientInformationFull, authorization_code: str
    ) -> str:
        """Return the PKCE challenge recorded for a code without consuming it."""
        entry = self.code_store.get(authorization_code)
        if entry is None or entry.client_id != client.client_id:
            raise TokenError("invalid_grant", "Invalid authorization code")
        return entry.pkce_challenge

    async def load_authorization_code(
        self, client: OAuthClientInformationFull, authorization_code: str
    ) -> Optional[NextcloudAuthorizationCode]:
        """Consume a code and hand its context to the token handler.

        The code is removed before the handler checks client, redirect URI
        and PKCE verifier, so a failed attempt invalidates it just like a
        successful one.
        """
        entry = self.code_store.take(authorization_code)
        if entry is None:
            logger.warning(
                f"[token] Auth code exchange failed for {client.client_id}: "
                "invalid or expired code"
            )
            return None
        if entry.client_id != client.client_id:
            logger.warning(
                f"[token] Auth code exchange failed for {client.client_id}: "
                "client_id mismatch"
            )
        return NextcloudAuthorizationCode(
            code=authorization_code,
            scopes=entry.scopes,
            expires_at=entry.issued_at + self.code_store.ttl_seconds,
            client_id=entry.client_id,
            code_challenge=entry.pkce_challenge,
            redirect_uri=AnyUrl(entry.redirect_uri),
            redirect_uri_provided_explicitly=True,
            user_id=entry.user_id,
            state=entry.state,
        )

    async def exchange_authorization_code(
        self,
        client: OAuthClientInformationFull,
        authorization_code: NextcloudAuthorizationCode,
    ) -> OAuthToken:
        tokens = self._issue_tokens(
            authorization_code.user_id, client.client_id, authorization_code.scopes
        )
        logger.info(
            f"[token] Access token issued for {authorization_code.user_id} "
            f"({client.client_id}, scopes={authorization_code.scopes})"
        )
        return tokens

    async def load_refresh_token(
        self, client: OAuthClientInformationFull, refresh_token: str
    ) -> Optional[NextcloudRefreshToken]:
        """Look up a refresh token presented by ``client``.

        A token presented by a client it was not issued to is destroyed.
        """
        entry = self.refresh_store.get(refresh_token)
        if entry is None:
            return None
        if entry.client_id != client.client_id:
            logger.warning(
                f"[token] Refresh token presented by {client.client_id} belongs "
                "to another client, revoking it"
            )
            self.refresh_store.delete(refresh_token)
            return None
        return NextcloudRefreshToken(
            token=refresh_token,
            client_id=entry.client_id,
            scopes=entry.scopes,
            expires_at=int(entry.issued_at + self.refresh_store.ttl_seconds),
            user_id=entry.user_id,
        )

    async def exchange_refresh_token(
        self,
        client: OAuthClientInformationFull,
        refresh_token: NextcloudRefreshToken,
        scopes: list[str],
    ) -> OAuthToken:
        """Rotate a refresh token and mint a new access token.

        Requested scopes, if any, must be a subset of the original grant.
        """
        entry = self.refresh_store.take(refresh_token.token)
        if entry is None or entry.client_id != client.client_id:
            logger.warning(
                f"[token] Refresh failed for {client.client_id}: "
                "token already used or expired"
            )
            raise TokenError("invalid_grant", "Invalid refresh token")

        extra = [s for s in scopes if s not in entry.scopes]
        if extra:
            logger.warning(
                f"[token] Refresh failed for {client.client_id}: "
                f"requested scopes beyond grant: {extra}"
            )
            raise TokenError(
                "invalid_scope", "Requested scope exceeds the scope originally granted"
            )

        tokens = self._issue_tokens(entry.user_id, entry.client_id, scopes or entry.scopes)
        logger.info(f"[token] Token refreshed for {entry.user_id} ({client.client_id})")
        return tokens

    def _issue_tokens(self, user_id: str, client_id: str, scopes: list[str]) -> OAuthToken:
        access_token = self.token_codec.encode(
            client_id=client_id, scopes=scopes, user_id=user_id
        )
        refresh_token = self.refresh_store.store(
            RefreshTokenGrant(user_id=user_id, client_id=client_id, scopes=list(scopes))
        )
        return OAuthToken(
            access_token=access_token,
            token_type="Bearer",
            expires_in=self.token_codec.lifetime,
            refresh_token=refresh_token,
            scope=" ".join(scopes),
        )

    async def verify_access_token(self, token: str) -> NextcloudAccessToken:
        """Verify a bearer token.

        Raises:
            ConfigurationError: If MCP_AUTH_SECRET is not configured
            InvalidTokenError: For any signature, structure or expiry failure
        """
        try:
            return self.token_codec.decode(token)
        except InvalidTokenError:
            logger.warning(
                "[auth] Access token verification failed: invalid or expired token"
            )
            raise

    async def load_access_token(self, token: str) -> Optional[NextcloudAccessToken]:
        try:
            return self.token_codec.decode(token)
        except (ConfigurationError, InvalidTokenError):
            return None

    async def verify_token(self, token: str) -> AccessToken | None:
        """MCP SDK TokenVerifier hook used by the bearer middleware on /mcp."""
        try:
            access_token = await self.verify_access_token(token)
        except ConfigurationError as e:
            logger.error(f"[auth] Cannot verify access tokens: {e}")
            record_token_validation("error")
            return None
        except InvalidTokenError:
            record_token_validation("invalid")
            return None
        record_token_validation("valid")
        return access_token

    async def revoke_token(self, token: AccessToken | RefreshToken) -> None:
        """Revoke a token already checked to belong to the calling client.

        Access tokens are stateless and stay valid until they expire, so
        revoking one is a no-op (RFC 7009 section 2.2).
        """
        if not isinstance(token, RefreshToken):
            logger.debug(f"[revoke] Access token for {token.client_id} left to expire")
            oauth_token_revocations_total.labels(result="noop").inc()
            return
        self.refresh_store.delete(token.token)
        oauth_token_revocations_total.labels(result="revoked").inc()
        user = getattr(token, "user_id", None)
        logger.info(f"[revoke] Refresh token revoked for {user} ({token.client_id})")
