"""
Prometheus metrics for the Nextcloud MCP gateway.

Metrics are organized by category:

- OAuth Authorization Server Metrics (codes, grants, validations)
- Login Metrics (delegated Nextcloud credential checks)
- Client Registration Metrics
"""

import logging

from prometheus_client import Counter, Histogram, start_http_server

logger = logging.getLogger(__name__)

# =============================================================================
# OAuth Authorization Server Metrics
# =============================================================================

oauth_authorization_codes_issued_total = Counter(
    "mcp_oauth_authorization_codes_issued_total",
    "Total authorization codes issued after a successful login",
)

oauth_token_grants_total = Counter(
    "mcp_oauth_token_grants_total",
    "Total token endpoint grants",
    ["grant_type", "status"],  # status: success | rejected
)

oauth_token_validations_total = Counter(
    "mcp_oauth_token_validations_total",
    "Total access token validation attempts",
    ["result"],  # result: valid | invalid | error
)

oauth_token_revocations_total = Counter(
    "mcp_oauth_token_revocations_total",
    "Total token revocation requests",
    ["result"],  # result: revoked | noop
)

# =============================================================================
# Login Metrics
# =============================================================================

login_attempts_total = Counter(
    "mcp_login_attempts_total",
    "Total Nextcloud login attempts on the authorization page",
    ["result"],  # result: success | invalid_credentials | unavailable | invalid_request
)

nextcloud_auth_duration_seconds = Histogram(
    "mcp_nextcloud_auth_duration_seconds",
    "Duration of Nextcloud credential verification requests in seconds",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# =============================================================================
# Client Registration Metrics
# =============================================================================

oauth_clients_registered_total = Counter(
    "mcp_oauth_clients_registered_total",
    "Total dynamically registered OAuth clients",
    ["status"],  # status: success | rejected
)


def setup_metrics(port: int = 9090) -> None:
    """
    Start the Prometheus exporter on a dedicated port.

    Metrics are not exposed on the main HTTP port.

    Args:
        port: Port for the metrics HTTP server (default: 9090)
    """
    try:
        start_http_server(port)
        logger.info(f"Prometheus metrics server started on port {port}")
    except OSError as e:
        logger.error(f"Failed to start metrics server on port {port}: {e}")
        raise


def record_token_grant(grant_type: str, status: str = "success") -> None:
    """
    Record a token endpoint grant.

    Args:
        grant_type: authorization_code | refresh_token
        status: success | rejected
    """
    oauth_token_grants_total.labels(grant_type=grant_type, status=status).inc()


def record_token_validation(result: str) -> None:
    """
    Record an access token validation.

    Args:
        result: valid | invalid | error
    """
    oauth_token_validations_total.labels(result=result).inc()


def record_login_attempt(result: str, duration: float | None = None) -> None:
    """
    Record a login attempt and, if given, the Nextcloud round-trip time.

    Args:
        result: success | invalid_credentials | unavailable | invalid_request
        duration: Seconds spent waiting for Nextcloud
    """
    login_attempts_total.labels(result=result).inc()
    if duration is not None:
        nextcloud_auth_duration_seconds.observe(duration)
