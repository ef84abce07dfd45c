import logging
import os
from dataclasses import dataclass, field
from typing import Optional

# Minimum length of the HMAC signing secret
MIN_SECRET_LENGTH = 32


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    """Application settings from environment variables."""

    # OAuth authorization server
    auth_enabled: bool = False
    auth_secret: Optional[str] = None
    auth_previous_secret: Optional[str] = None  # verification-only, for rotation
    auth_issuer: Optional[str] = None
    auth_code_ttl: int = 300  # seconds (5 minutes)
    refresh_token_ttl: int = 86400  # seconds (24 hours)

    # Operator-configured OAuth client
    mcp_client_id: Optional[str] = None
    mcp_client_secret: Optional[str] = None
    mcp_client_redirect_uris: list[str] = field(default_factory=list)
    registration_enabled: bool = False

    # Nextcloud identity source
    nextcloud_url: Optional[str] = None
    nextcloud_timeout: float = 10.0

    # HTTP server
    host: str = "0.0.0.0"
    port: int = 3339
    trust_proxy: bool = False

    # Observability settings
    metrics_enabled: bool = False
    metrics_port: int = 9090
    log_format: str = "text"  # "json" or "text"
    log_level: str = "INFO"

    def __post_init__(self):
        """Normalize URLs and warn about weak settings."""
        logger = logging.getLogger(__name__)

        if self.nextcloud_url:
            self.nextcloud_url = self.nextcloud_url.rstrip("/")
        if self.auth_issuer:
            self.auth_issuer = self.auth_issuer.rstrip("/")

        if self.auth_code_ttl > 600:
            logger.warning(
                f"MCP_AUTH_CODE_TTL is set to {self.auth_code_ttl} seconds. "
                "Authorization codes should be short-lived (10 minutes at most)."
            )

        if self.auth_previous_secret and not self.auth_secret:
            logger.warning(
                "MCP_AUTH_PREVIOUS_SECRET is set without MCP_AUTH_SECRET and will be ignored"
            )

    @property
    def issuer_url(self) -> str:
        """Public base URL of the authorization server."""
        return self.auth_issuer or f"http://localhost:{self.port}"

    @property
    def mcp_server_url(self) -> str:
        """Public URL of the MCP endpoint (used as protected resource id)."""
        return f"{self.issuer_url}/mcp"


def get_settings() -> Settings:
    """Get application settings from environment variables.

    Returns:
        Settings object with configuration values
    """
    redirect_uris = os.getenv("MCP_CLIENT_REDIRECT_URIS", "")
    return Settings(
        # OAuth authorization server
        auth_enabled=_env_flag("MCP_AUTH_ENABLED"),
        auth_secret=os.getenv("MCP_AUTH_SECRET") or None,
        auth_previous_secret=os.getenv("MCP_AUTH_PREVIOUS_SECRET") or None,
        auth_issuer=os.getenv("MCP_AUTH_ISSUER") or None,
        auth_code_ttl=int(os.getenv("MCP_AUTH_CODE_TTL", "300")),
        refresh_token_ttl=int(os.getenv("MCP_REFRESH_TOKEN_TTL", "86400")),
        # Operator-configured client
        mcp_client_id=os.getenv("MCP_CLIENT_ID") or None,
        mcp_client_secret=os.getenv("MCP_CLIENT_SECRET") or None,
        mcp_client_redirect_uris=[
            uri.strip() for uri in redirect_uris.split(",") if uri.strip()
        ],
        registration_enabled=_env_flag("MCP_REGISTRATION_ENABLED"),
        # Nextcloud
        nextcloud_url=os.getenv("NEXTCLOUD_URL") or None,
        nextcloud_timeout=float(os.getenv("NEXTCLOUD_TIMEOUT", "10")),
        # HTTP server
        host=os.getenv("MCP_HOST", "0.0.0.0"),
        port=int(os.getenv("MCP_PORT", "3339")),
        trust_proxy=_env_flag("MCP_TRUST_PROXY"),
        # Observability settings
        metrics_enabled=_env_flag("METRICS_ENABLED"),
        metrics_port=int(os.getenv("METRICS_PORT", "9090")),
        log_format=os.getenv("LOG_FORMAT", "text"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
