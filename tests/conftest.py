import hashlib
import secrets
from base64 import b64encode, urlsafe_b64encode
from typing import Callable

import httpx
import pytest

from nextcloud_mcp_gateway.auth.client_store import ClientStore
from nextcloud_mcp_gateway.auth.models import OAuthClient
from nextcloud_mcp_gateway.auth.provider import NextcloudOAuthProvider
from nextcloud_mcp_gateway.auth.token_codec import TokenCodec
from nextcloud_mcp_gateway.config import Settings

TEST_SECRET = "test-signing-secret-0123456789abcdef"
TEST_ISSUER = "http://localhost:3339"
NEXTCLOUD_URL = "https://cloud.example.com"
REDIRECT_URI = "http://localhost:8765/callback"

# Credentials the stubbed Nextcloud accepts
VALID_USERNAME = "alice"
VALID_PASSWORD = "correct-horse"


def make_pkce_pair() -> tuple[str, str]:
    """Return a (code_verifier, S256 code_challenge) pair."""
    verifier = secrets.token_urlsafe(48)
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = urlsafe_b64encode(digest).decode("ascii").rstrip("=")
    return verifier, challenge


@pytest.fixture
def pkce_pair() -> tuple[str, str]:
    return make_pkce_pair()


@pytest.fixture
def oauth_client() -> OAuthClient:
    """Confidential client with a single registered redirect URI."""
    return OAuthClient(
        client_id="test-client",
        client_secret="test-client-secret",
        redirect_uris=[REDIRECT_URI],
        token_endpoint_auth_method="client_secret_post",
        client_name="Test Client",
    )


@pytest.fixture
def other_client() -> OAuthClient:
    return OAuthClient(
        client_id="other-client",
        client_secret="other-client-secret",
        redirect_uris=[REDIRECT_URI],
        token_endpoint_auth_method="client_secret_post",
    )


@pytest.fixture
def token_codec() -> TokenCodec:
    return TokenCodec(TEST_SECRET)


@pytest.fixture
def provider(oauth_client, other_client, token_codec) -> NextcloudOAuthProvider:
    return NextcloudOAuthProvider(
        clients_store=ClientStore([oauth_client, other_client]),
        token_codec=token_codec,
    )


@pytest.fixture
def settings() -> Settings:
    """OAuth-enabled settings with a pre-seeded client and registration on."""
    return Settings(
        auth_enabled=True,
        auth_secret=TEST_SECRET,
        auth_issuer=TEST_ISSUER,
        mcp_client_id="preseeded",
        mcp_client_secret="preseeded-secret",
        registration_enabled=True,
        nextcloud_url=NEXTCLOUD_URL,
    )


@pytest.fixture
def nextcloud_requests() -> list[httpx.Request]:
    """Requests received by the stubbed Nextcloud."""
    return []


@pytest.fixture
def nextcloud_transport(nextcloud_requests) -> httpx.MockTransport:
    """Nextcloud OCS stub accepting only VALID_USERNAME / VALID_PASSWORD."""
    userpass = f"{VALID_USERNAME}:{VALID_PASSWORD}".encode()
    authorization = f"Basic {b64encode(userpass).decode()}"

    def handler(request: httpx.Request) -> httpx.Response:
        nextcloud_requests.append(request)
        if request.url.path != "/ocs/v2.php/cloud/user":
            return httpx.Response(404)
        if request.headers.get("Authorization") == authorization:
            return httpx.Response(
                200, json={"ocs": {"data": {"id": VALID_USERNAME}}}
            )
        return httpx.Response(401, json={"ocs": {"meta": {"status": "failure"}}})

    return httpx.MockTransport(handler)


@pytest.fixture
def failing_transport() -> httpx.MockTransport:
    """Transport that cannot reach Nextcloud at all."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    return httpx.MockTransport(handler)


@pytest.fixture
def issue_code(provider, oauth_client, pkce_pair) -> Callable[..., str]:
    """Issue an authorization code for the test client."""

    def _issue(scopes=("notes:read", "notes:write"), **overrides) -> str:
        params = {
            "pkce_challenge": pkce_pair[1],
            "client_id": oauth_client.client_id,
            "scopes": list(scopes),
            "redirect_uri": REDIRECT_URI,
            "user_id": VALID_USERNAME,
            "state": "xyz",
        }
        params.update(overrides)
        return provider.issue_auth_code(**params)

    return _issue
