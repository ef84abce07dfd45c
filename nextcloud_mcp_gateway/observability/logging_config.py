"""
Logging configuration for the Nextcloud MCP gateway.

This module provides:
- Structured JSON logging with python-json-logger
- Configurable log formats (JSON or text)
- Log level configuration per component
- A uvicorn log config that drops health check noise from access logs
"""

import logging
import sys
from typing import Any, Optional, TextIO

from pythonjsonlogger.json import JsonFormatter

JSON_FORMAT = "%(timestamp)s %(level)s %(name)s %(message)s"
TEXT_FORMAT = "%(levelname)s [%(asctime)s] %(name)s - %(message)s"

# Paths polled by orchestrators and scrapers
QUIET_PATHS = ("/health/live", "/metrics")


class HealthCheckFilter(logging.Filter):
    """
    Logging filter that excludes health check requests from access logs.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        return not any(path in message for path in QUIET_PATHS)


class GatewayJsonFormatter(JsonFormatter):
    """
    JSON formatter with consistent field names across application and
    uvicorn log records.
    """

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = self.formatTime(record)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["message"] = record.getMessage()

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)


def setup_logging(
    log_format: str = "text",
    log_level: str = "INFO",
    stream: Optional[TextIO] = None,
) -> None:
    """
    Configure root logging for the gateway.

    Args:
        log_format: "json" for JSON logging, "text" for human-readable text (default: "text")
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL) (default: "INFO")
        stream: Output stream (default: stdout). The stdio transport needs
            stderr, since stdout carries the protocol.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setLevel(level)

    formatter: logging.Formatter
    if log_format.lower() == "json":
        formatter = GatewayJsonFormatter(JSON_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S")
    else:
        formatter = logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    configure_component_loggers(log_level)

    root_logger.info(f"Logging configured: format={log_format}, level={log_level}")


def configure_component_loggers(default_level: str = "INFO") -> None:
    """
    Configure log levels for specific components.

    Args:
        default_level: Default log level for gateway components
    """
    logger_levels = {
        "nextcloud_mcp_gateway": default_level,
        "nextcloud_mcp_gateway.auth": default_level,
        "nextcloud_mcp_gateway.observability": default_level,
        # HTTP client loggers (less verbose by default)
        "httpx": "WARNING",
        "httpcore": "WARNING",
        "uvicorn": "INFO",
        "uvicorn.access": "INFO",
        "uvicorn.error": "INFO",
        "mcp": "INFO",
    }

    for logger_name, level in logger_levels.items():
        logging.getLogger(logger_name).setLevel(
            getattr(logging, level.upper(), logging.INFO)
        )


def get_uvicorn_logging_config(
    log_format: str = "text", log_level: str = "INFO"
) -> dict:
    """
    Get uvicorn-compatible logging configuration.

    Args:
        log_format: "json" or "text"
        log_level: Minimum log level

    Returns:
        Logging config dict compatible with uvicorn's log_config parameter
    """
    if log_format.lower() == "json":
        formatter_class = (
            "nextcloud_mcp_gateway.observability.logging_config.GatewayJsonFormatter"
        )
        format_string = JSON_FORMAT
    else:
        formatter_class = "logging.Formatter"
        format_string = TEXT_FORMAT

    def _quiet(level: str = "WARNING") -> dict[str, Any]:
        return {"handlers": ["default"], "level": level, "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "()": formatter_class,
                "format": format_string,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "filters": {
            "health_check_filter": {
                "()": "nextcloud_mcp_gateway.observability.logging_config.HealthCheckFilter",
            },
        },
        "handlers": {
            "default": {
                "formatter": "default",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
            },
            "access": {
                "formatter": "default",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "filters": ["health_check_filter"],
            },
        },
        "loggers": {
            "": {"handlers": ["default"], "level": log_level.upper()},
            "uvicorn": _quiet("INFO"),
            "uvicorn.access": {
                "handlers": ["access"],
                "level": "INFO",
                "propagate": False,
            },
            "uvicorn.error": _quiet("INFO"),
            "httpx": _quiet(),
            "httpcore": _quiet(),
        },
    }
