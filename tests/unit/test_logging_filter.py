"""Unit tests for logging configuration."""

import json
import logging

import pytest

from nextcloud_mcp_gateway.observability.logging_config import (
    GatewayJsonFormatter,
    HealthCheckFilter,
    get_uvicorn_logging_config,
)


def make_record(msg: str, name: str = "uvicorn.access") -> logging.LogRecord:
    return logging.LogRecord(
        name=name,
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg=msg,
        args=(),
        exc_info=None,
    )


@pytest.mark.unit
class TestHealthCheckFilter:
    """Tests for the HealthCheckFilter."""

    def test_filters_health_live_requests(self):
        record = make_record('127.0.0.1:12345 - "GET /health/live HTTP/1.1" 200')

        assert HealthCheckFilter().filter(record) is False

    def test_filters_metrics_requests(self):
        record = make_record('127.0.0.1:12345 - "GET /metrics HTTP/1.1" 200')

        assert HealthCheckFilter().filter(record) is False

    def test_allows_oauth_requests(self):
        record = make_record('127.0.0.1:12345 - "POST /oauth/token HTTP/1.1" 200')

        assert HealthCheckFilter().filter(record) is True


@pytest.mark.unit
class TestJsonFormatter:
    def test_consistent_field_names(self):
        formatter = GatewayJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
        record = make_record("token issued", name="nextcloud_mcp_gateway.auth")

        payload = json.loads(formatter.format(record))

        assert payload["level"] == "INFO"
        assert payload["logger"] == "nextcloud_mcp_gateway.auth"
        assert payload["message"] == "token issued"
        assert "timestamp" in payload


@pytest.mark.unit
class TestUvicornLoggingConfig:
    def test_json_format_uses_gateway_formatter(self):
        config = get_uvicorn_logging_config(log_format="json")

        assert config["formatters"]["default"]["()"].endswith("GatewayJsonFormatter")

    def test_text_format(self):
        config = get_uvicorn_logging_config(log_format="text", log_level="debug")

        assert config["formatters"]["default"]["()"] == "logging.Formatter"
        assert config["loggers"][""]["level"] == "DEBUG"

    def test_access_log_filters_health_checks(self):
        config = get_uvicorn_logging_config()

        assert config["handlers"]["access"]["filters"] == ["health_check_filter"]
