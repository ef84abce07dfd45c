"""Unit tests for the per-IP rate limiting middleware."""

import pytest
from starlette.applications import Starlette
from starlette.responses import PlainTextResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from nextcloud_mcp_gateway.auth.rate_limit import (
    DEFAULT_RULES,
    RateLimitMiddleware,
    RateLimitRule,
)

pytestmark = pytest.mark.unit


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def ok(request):
    return PlainTextResponse("ok")


def create_test_app(rules, clock) -> Starlette:
    app = Starlette(
        routes=[
            Route("/oauth/token", ok, methods=["POST"]),
            Route("/health/live", ok, methods=["GET"]),
        ]
    )
    app.add_middleware(RateLimitMiddleware, rules=rules, clock=clock)  # type: ignore[arg-type]
    return app


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def client(clock) -> TestClient:
    rules = [RateLimitRule("/oauth/token", max_requests=3, window_seconds=60)]
    return TestClient(create_test_app(rules, clock))


class TestRateLimitMiddleware:
    def test_allows_up_to_limit(self, client):
        for _ in range(3):
            assert client.post("/oauth/token").status_code == 200

    def test_rejects_over_limit(self, client):
        for _ in range(3):
            client.post("/oauth/token")

        response = client.post("/oauth/token")

        assert response.status_code == 429
        assert response.json()["error"] == "too_many_requests"
        assert response.headers["retry-after"] == "60"

    def test_window_slides(self, client, clock):
        for _ in range(3):
            client.post("/oauth/token")

        clock.now += 61

        assert client.post("/oauth/token").status_code == 200

    def test_unlisted_paths_unlimited(self, client):
        for _ in range(10):
            assert client.get("/health/live").status_code == 200

    def test_default_rules_cover_oauth_and_login(self):
        prefixes = {rule.path_prefix for rule in DEFAULT_RULES}

        assert prefixes == {
            "/oauth/register",
            "/oauth/token",
            "/oauth/authorize",
            "/oauth/revoke",
            "/auth/login",
        }
