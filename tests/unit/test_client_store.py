"""Unit tests for the OAuth client registry."""

import pytest
from mcp.shared.auth import InvalidRedirectUriError, InvalidScopeError
from pydantic import AnyUrl

from nextcloud_mcp_gateway.auth.client_store import (
    ClientStore,
    RegistrableClientStore,
    SupportsRegistration,
)
from nextcloud_mcp_gateway.auth.models import OAuthClient
from nextcloud_mcp_gateway.config import Settings

pytestmark = pytest.mark.unit


class TestStaticStore:
    def test_empty_store(self):
        store = ClientStore()

        assert store.get_client("anything") is None
        assert store.list_clients() == []

    def test_preseeded_list(self, oauth_client):
        store = ClientStore([oauth_client])

        assert store.get_client("test-client") is oauth_client
        assert store.get_client("unknown") is None

    def test_registration_is_absent(self):
        store = ClientStore()

        assert not hasattr(store, "register_client")
        assert not isinstance(store, SupportsRegistration)


class TestFromSettings:
    def test_preseeded_client_from_env_settings(self):
        settings = Settings(mcp_client_id="cid", mcp_client_secret="csecret")

        store = ClientStore.from_settings(settings)
        client = store.get_client("cid")

        assert client is not None
        assert client.client_secret == "csecret"
        assert client.client_name == "Pre-seeded client"
        assert client.token_endpoint_auth_method == "client_secret_post"
        assert client.grant_types == ["authorization_code", "refresh_token"]
        assert client.response_types == ["code"]
        assert client.client_secret_expires_at == 0
        assert client.redirect_uris is None

    def test_preseeded_client_redirect_uris(self):
        settings = Settings(
            mcp_client_id="cid",
            mcp_client_secret="csecret",
            mcp_client_redirect_uris=["https://app.example.com/cb"],
        )

        client = ClientStore.from_settings(settings).get_client("cid")

        assert client is not None
        assert [str(u) for u in client.redirect_uris] == ["https://app.example.com/cb"]

    def test_half_configured_client_is_skipped(self):
        store = ClientStore.from_settings(Settings(mcp_client_id="cid"))

        assert store.list_clients() == []

    def test_registration_disabled_by_default(self):
        store = ClientStore.from_settings(Settings())

        assert not isinstance(store, SupportsRegistration)

    def test_registration_enabled(self):
        store = ClientStore.from_settings(
            Settings(
                mcp_client_id="cid",
                mcp_client_secret="csecret",
                registration_enabled=True,
            )
        )

        assert isinstance(store, RegistrableClientStore)
        assert isinstance(store, SupportsRegistration)
        assert store.get_client("cid") is not None


def registered_client(client_id: str, **fields) -> OAuthClient:
    return OAuthClient(
        client_id=client_id,
        client_secret="secret",
        redirect_uris=["http://localhost:9000/cb"],
        token_endpoint_auth_method="client_secret_post",
        **fields,
    )


class TestRegistration:
    def test_stores_client(self):
        store = RegistrableClientStore()
        client = registered_client(
            "c1",
            client_name="Claude",
            logo_uri="https://example.com/logo.png",
            contacts=["ops@example.com"],
        )

        assert store.register_client(client) is client
        stored = store.get_client("c1")
        assert stored is client
        assert str(stored.logo_uri) == "https://example.com/logo.png"
        assert stored.contacts == ["ops@example.com"]

    def test_registered_clients_are_listed(self):
        store = RegistrableClientStore([registered_client("static")])

        store.register_client(registered_client("c1"))
        store.register_client(registered_client("c2"))

        assert {c.client_id for c in store.list_clients()} == {"static", "c1", "c2"}

    def test_limit(self):
        store = RegistrableClientStore(max_clients=2)
        store.register_client(registered_client("c1"))
        store.register_client(registered_client("c2"))

        with pytest.raises(ValueError, match="Maximum number"):
            store.register_client(registered_client("c3"))
        assert store.get_client("c3") is None

    def test_static_clients_do_not_count_towards_limit(self):
        store = RegistrableClientStore([registered_client("static")], max_clients=1)

        store.register_client(registered_client("c1"))

        assert store.get_client("c1") is not None


class TestClientValidation:
    def test_registered_redirect_uri_accepted(self, oauth_client):
        uri = oauth_client.redirect_uris[0]

        assert oauth_client.validate_redirect_uri(uri) == uri

    def test_single_registered_uri_used_by_default(self, oauth_client):
        assert oauth_client.validate_redirect_uri(None) == oauth_client.redirect_uris[0]

    def test_unregistered_redirect_uri_rejected(self, oauth_client):
        with pytest.raises(InvalidRedirectUriError):
            oauth_client.validate_redirect_uri(AnyUrl("https://evil.example.com/cb"))

    def test_open_client_accepts_any_absolute_uri(self):
        client = OAuthClient(client_id="open")
        uri = AnyUrl("https://app.example.com/cb")

        assert client.validate_redirect_uri(uri) == uri

    @pytest.mark.parametrize(
        "uri",
        [
            "myapp://callback",
            "ftp://files.example.com/cb",
            "https://x.example.com/cb#frag",
        ],
    )
    def test_open_client_rejects_non_http_uri(self, uri):
        client = OAuthClient(client_id="open")

        with pytest.raises(InvalidRedirectUriError):
            client.validate_redirect_uri(AnyUrl(uri))

    def test_open_client_requires_redirect_uri(self):
        with pytest.raises(InvalidRedirectUriError):
            OAuthClient(client_id="open").validate_redirect_uri(None)

    def test_scope_within_registration(self):
        client = OAuthClient(client_id="c", scope="notes:read notes:write")

        assert client.validate_scope("notes:read") == ["notes:read"]
        assert client.validate_scope(None) is None

    def test_scope_outside_registration(self):
        client = OAuthClient(client_id="c", scope="notes:read")

        with pytest.raises(InvalidScopeError):
            client.validate_scope("notes:read files:write")

    def test_unrestricted_client_accepts_any_scope(self):
        client = OAuthClient(client_id="c")

        assert client.validate_scope("a b") == ["a", "b"]
