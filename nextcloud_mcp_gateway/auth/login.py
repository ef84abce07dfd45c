"""Login endpoint for the authorization page.

``GET /auth/login`` renders the sign-in form for a request that
/oauth/authorize has already validated. ``POST /auth/login`` receives the
form, checks the submitted username/password against the Nextcloud OCS API
and, on success, issues an authorization code and redirects the browser back
to the MCP client. Credentials are only forwarded to Nextcloud, never stored.
"""

import logging
import time
from typing import Optional

import httpx
from mcp.server.auth.provider import construct_redirect_uri
from mcp.shared.auth import InvalidRedirectUriError, InvalidScopeError
from pydantic import AnyUrl, ValidationError
from starlette.requests import Request
from starlette.responses import HTMLResponse, PlainTextResponse, RedirectResponse, Response

from nextcloud_mcp_gateway.auth.errors import (
    NextcloudAuthenticationError,
    NextcloudUnavailableError,
)
from nextcloud_mcp_gateway.auth.login_form import render_login_form
from nextcloud_mcp_gateway.auth.models import OAuthClient
from nextcloud_mcp_gateway.auth.provider import NextcloudOAuthProvider
from nextcloud_mcp_gateway.observability.metrics import record_login_attempt

logger = logging.getLogger(__name__)

OCS_USER_PATH = "/ocs/v2.php/cloud/user"

REQUIRED_FIELDS = ("username", "password", "client_id", "redirect_uri", "code_challenge")
REQUEST_FIELDS = ("client_id", "redirect_uri", "code_challenge")


class InvalidLoginRequest(Exception):
    """The authorization context carried by the login form does not check out."""

    pass


class LoginHandler:
    """Handles ``GET`` and ``POST /auth/login``."""

    def __init__(
        self,
        provider: NextcloudOAuthProvider,
        nextcloud_url: Optional[str],
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            provider: Authorization server that issues the code
            nextcloud_url: Base URL of the Nextcloud instance (NEXTCLOUD_URL)
            timeout: Seconds to wait for the OCS credential check
            transport: Optional httpx transport, used to stub Nextcloud in tests
        """
        self.provider = provider
        self.nextcloud_url = nextcloud_url.rstrip("/") if nextcloud_url else None
        self.timeout = timeout
        self._transport = transport

    async def verify_credentials(self, username: str, password: str) -> None:
        """Check a username/password pair against Nextcloud.

        Raises:
            NextcloudAuthenticationError: Nextcloud answered with a non-2xx status
            NextcloudUnavailableError: Nextcloud could not be reached
        """
        url = f"{self.nextcloud_url}{OCS_USER_PATH}"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.get(
                    url,
                    auth=(username, password),
                    headers={"OCS-APIRequest": "true", "Accept": "application/json"},
                )
        except httpx.HTTPError as e:
            raise NextcloudUnavailableError(
                f"Could not reach Nextcloud at {self.nextcloud_url}: {e}"
            ) from e

        if not response.is_success:
            raise NextcloudAuthenticationError(
                f"Nextcloud rejected credentials for {username} "
                f"(HTTP {response.status_code})"
            )

    def check_request(
        self, client_id: str, redirect_uri: str, scope: str
    ) -> tuple[OAuthClient, list[str]]:
        """Re-validate the authorization context carried by the login form.

        The hidden fields travel through the browser, so client, redirect
        URI and scope are checked again before any code is issued.

        Raises:
            InvalidLoginRequest: Unknown client, unregistered redirect URI or
                a scope the client was not registered for
        """
        client = self.provider.clients_store.get_client(client_id)
        if client is None:
            raise InvalidLoginRequest(f"unknown client {client_id}")
        try:
            client.validate_redirect_uri(AnyUrl(redirect_uri))
            scopes = client.validate_scope(scope or None)
        except ValidationError as e:
            raise InvalidLoginRequest(f"{client_id}: malformed redirect_uri") from e
        except (InvalidRedirectUriError, InvalidScopeError) as e:
            raise InvalidLoginRequest(f"{client_id}: {e.message}") from e
        return client, scopes or []

    def _render(
        self,
        values: dict[str, str],
        error: Optional[str] = None,
        status_code: int = 200,
        client_name: Optional[str] = None,
    ) -> HTMLResponse:
        html = render_login_form(
            client_id=values.get("client_id", ""),
            redirect_uri=values.get("redirect_uri", ""),
            code_challenge=values.get("code_challenge", ""),
            state=values.get("state"),
            scope=values.get("scope"),
            client_name=client_name,
            error=error,
        )
        return HTMLResponse(content=html, status_code=status_code)

    async def show(self, request: Request) -> Response:
        """Render the sign-in form for a request forwarded by /oauth/authorize."""
        values = dict(request.query_params)
        if not all(values.get(name) for name in REQUEST_FIELDS):
            return self._render(values, "Missing required parameters", status_code=400)
        try:
            client, _ = self.check_request(
                values["client_id"], values["redirect_uri"], values.get("scope", "")
            )
        except InvalidLoginRequest as e:
            logger.warning(f"[login] Refused to show login form: {e}")
            return self._render(values, "Invalid authorization request", status_code=400)
        return self._render(values, client_name=client.client_name)

    async def handle(self, request: Request) -> Response:
        """Process a submitted login form.

        Returns:
            302 redirect with the authorization code on success, the login
            form with an error message otherwise
        """
        if not self.nextcloud_url:
            logger.error("[login] NEXTCLOUD_URL is not set, cannot verify credentials")
            return PlainTextResponse(
                "Server configuration error: NEXTCLOUD_URL not set", status_code=500
            )

        form = await request.form()
        values = {
            key: value if isinstance(value, str) else ""
            for key, value in form.items()
        }
        username = values.get("username", "")
        password = values.get("password", "")
        client_id = values.get("client_id", "")
        redirect_uri = values.get("redirect_uri", "")
        state = values.get("state", "")

        if not all(values.get(name) for name in REQUIRED_FIELDS):
            record_login_attempt("invalid_request")
            return self._render(values, "Missing required parameters", status_code=400)

        try:
            client, scopes = self.check_request(
                client_id, redirect_uri, values.get("scope", "")
            )
        except InvalidLoginRequest as e:
            logger.warning(f"[login] Rejected login: {e}")
            record_login_attempt("invalid_request")
            return self._render(values, "Invalid authorization request", status_code=400)

        started = time.perf_counter()
        try:
            await self.verify_credentials(username, password)
        except NextcloudAuthenticationError as e:
            logger.info(f"[login] {e}")
            record_login_attempt("invalid_credentials", time.perf_counter() - started)
            return self._render(
                values, "Invalid Nextcloud credentials", client_name=client.client_name
            )
        except NextcloudUnavailableError as e:
            logger.error(f"[login] Credential check failed: {e}")
            record_login_attempt("unavailable", time.perf_counter() - started)
            return self._render(
                values,
                "Authentication failed. Please try again.",
                client_name=client.client_name,
            )
        record_login_attempt("success", time.perf_counter() - started)

        code = self.provider.issue_auth_code(
            pkce_challenge=values["code_challenge"],
            client_id=client_id,
            scopes=scopes,
            redirect_uri=redirect_uri,
            user_id=username,
            state=state or None,
        )
        logger.info(f"[login] User {username} authenticated for client {client_id}")

        return RedirectResponse(
            url=construct_redirect_uri(redirect_uri, code=code, state=state or None),
            status_code=302,
        )
