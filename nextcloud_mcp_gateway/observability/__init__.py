"""
Observability module for the Nextcloud MCP gateway.

This module provides:
- Prometheus metrics for the authorization server and login flow
- Structured logging (text or JSON)

Usage:
    from nextcloud_mcp_gateway.observability import setup_logging, setup_metrics

    setup_logging(log_format="json", log_level="INFO")
    setup_metrics(port=9090)
"""

from nextcloud_mcp_gateway.observability.logging_config import (
    get_uvicorn_logging_config,
    setup_logging,
)
from nextcloud_mcp_gateway.observability.metrics import setup_metrics

__all__ = [
    "setup_logging",
    "get_uvicorn_logging_config",
    "setup_metrics",
]
