"""Configuration validation and mode detection for the MCP gateway.

This module provides:
- Mode detection based on configuration
- Configuration validation with clear error messages
- Single source of truth for deployment mode requirements
"""

import logging
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlparse

from nextcloud_mcp_gateway.auth.errors import ConfigurationError
from nextcloud_mcp_gateway.config import MIN_SECRET_LENGTH, Settings

logger = logging.getLogger(__name__)


class AuthMode(Enum):
    """Authentication mode for the HTTP transport.

    LOCAL: no OAuth layer; for stdio and trusted local clients.
    OAUTH: embedded OAuth 2.1 authorization server guards /mcp.
    """

    LOCAL = "local"
    OAUTH = "oauth"


@dataclass
class ModeRequirements:
    """Requirements for a deployment mode.

    Attributes:
        required: Configuration variables that must be set
        optional: Configuration variables that may be set
        description: Human-readable description of the mode
    """

    required: list[str]
    optional: list[str]
    description: str


MODE_REQUIREMENTS: dict[AuthMode, ModeRequirements] = {
    AuthMode.LOCAL: ModeRequirements(
        required=[],
        optional=["nextcloud_url"],
        description="No authentication on the HTTP transport (local use only)",
    ),
    AuthMode.OAUTH: ModeRequirements(
        required=["auth_secret", "auth_issuer"],
        optional=[
            "auth_previous_secret",
            "mcp_client_id",
            "mcp_client_secret",
            "mcp_client_redirect_uris",
            "registration_enabled",
            "nextcloud_url",
        ],
        description="OAuth 2.1 with Nextcloud credential verification",
    ),
}

_LOCAL_HOSTS = ("localhost", "127.0.0.1", "::1")


def detect_auth_mode(settings: Settings) -> AuthMode:
    """Detect authentication mode from configuration."""
    if settings.auth_enabled:
        return AuthMode.OAUTH
    return AuthMode.LOCAL


def validate_configuration(settings: Settings) -> tuple[AuthMode, list[str]]:
    """Validate configuration for detected mode.

    Args:
        settings: Application settings

    Returns:
        Tuple of (detected_mode, list_of_errors)
        Empty list means valid configuration.
    """
    mode = detect_auth_mode(settings)
    requirements = MODE_REQUIREMENTS[mode]
    errors: list[str] = []

    logger.debug(f"Validating configuration for mode: {mode.value}")

    env_names = {
        "auth_secret": "MCP_AUTH_SECRET",
        "auth_issuer": "MCP_AUTH_ISSUER",
    }
    for var in requirements.required:
        value = getattr(settings, var, None)
        if value is None or (isinstance(value, str) and not value.strip()):
            errors.append(
                f"[{mode.value}] Missing required configuration: "
                f"{env_names.get(var, var.upper())} must be set when MCP_AUTH_ENABLED=true"
            )

    if mode == AuthMode.OAUTH:
        if settings.auth_secret and len(settings.auth_secret) < MIN_SECRET_LENGTH:
            errors.append(
                f"[{mode.value}] MCP_AUTH_SECRET must be at least "
                f"{MIN_SECRET_LENGTH} characters long"
            )

        if settings.auth_issuer:
            parsed = urlparse(settings.auth_issuer)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                errors.append(
                    f"[{mode.value}] MCP_AUTH_ISSUER must be an absolute URL: "
                    f"{settings.auth_issuer}"
                )
            elif parsed.scheme == "http" and parsed.hostname not in _LOCAL_HOSTS:
                errors.append(
                    f"[{mode.value}] MCP_AUTH_ISSUER must use https "
                    f"(http is only allowed for localhost): {settings.auth_issuer}"
                )
            if parsed.query or parsed.fragment:
                errors.append(
                    f"[{mode.value}] MCP_AUTH_ISSUER must not contain a query or fragment"
                )

        if not settings.nextcloud_url:
            # Not fatal: the login endpoint answers 500 until it is configured
            logger.error(
                f"[{mode.value}] NEXTCLOUD_URL is not set - "
                "logins will fail with a server configuration error"
            )

        if not settings.mcp_client_id and not settings.registration_enabled:
            logger.warning(
                f"[{mode.value}] No pre-seeded client and dynamic registration "
                "disabled - no client will be able to authenticate"
            )

    return mode, errors


def require_valid_configuration(settings: Settings) -> AuthMode:
    """Validate configuration and raise if it is not usable.

    Raises:
        ConfigurationError: With all validation errors joined
    """
    mode, errors = validate_configuration(settings)
    if errors:
        raise ConfigurationError(f"Invalid configuration: {'; '.join(errors)}")
    return mode


def get_mode_summary(mode: AuthMode) -> str:
    """Get human-readable summary of a deployment mode.

    Args:
        mode: Deployment mode

    Returns:
        Multi-line string describing the mode
    """
    requirements = MODE_REQUIREMENTS[mode]

    summary_lines = [
        f"Mode: {mode.value}",
        f"Description: {requirements.description}",
        "",
        "Required configuration:",
    ]

    if requirements.required:
        for var in requirements.required:
            summary_lines.append(f"  - {var.upper()}")
    else:
        summary_lines.append("  (none)")

    summary_lines.append("")
    summary_lines.append("Optional configuration:")
    for var in requirements.optional:
        summary_lines.append(f"  - {var.upper()}")

    return "\n".join(summary_lines)
