import dataclasses
import sys

import click
import uvicorn

from nextcloud_mcp_gateway.auth.errors import ConfigurationError
from nextcloud_mcp_gateway.config import get_settings
from nextcloud_mcp_gateway.config_validators import (
    get_mode_summary,
    validate_configuration,
)
from nextcloud_mcp_gateway.observability import (
    get_uvicorn_logging_config,
    setup_logging,
)

from .app import create_mcp_server, get_app


@click.command()
@click.option(
    "--host",
    "-h",
    envvar="MCP_HOST",
    default="0.0.0.0",
    show_default=True,
    help="Server host (can also use MCP_HOST env var)",
)
@click.option(
    "--port",
    "-p",
    type=int,
    envvar="MCP_PORT",
    default=3339,
    show_default=True,
    help="Server port (can also use MCP_PORT env var)",
)
@click.option(
    "--log-level",
    "-l",
    default="info",
    show_default=True,
    type=click.Choice(["critical", "error", "warning", "info", "debug", "trace"]),
    help="Logging level",
)
@click.option(
    "--transport",
    "-t",
    default="streamable-http",
    show_default=True,
    type=click.Choice(["streamable-http", "stdio"]),
    help="MCP transport protocol",
)
def run(host: str, port: int, log_level: str, transport: str):
    """
    Run the Nextcloud MCP gateway.

    \b
    Authentication:
      - stdio: no OAuth layer, the client runs the gateway locally
      - streamable-http: set MCP_AUTH_ENABLED=true to require OAuth bearer
        tokens on /mcp (needs MCP_AUTH_SECRET and MCP_AUTH_ISSUER)

    \b
    Examples:
      # Local use over stdio
      $ nextcloud-mcp-gateway run --transport stdio

      # Remote access behind a TLS-terminating proxy
      $ export MCP_AUTH_ENABLED=true
      $ export MCP_AUTH_SECRET=$(openssl rand -hex 32)
      $ export MCP_AUTH_ISSUER=https://mcp.example.com
      $ export NEXTCLOUD_URL=https://cloud.example.com
      $ export MCP_TRUST_PROXY=true
      $ nextcloud-mcp-gateway run --host 127.0.0.1
    """
    settings = dataclasses.replace(get_settings(), host=host, port=port)

    if transport == "stdio":
        # stdout carries the protocol
        setup_logging(
            log_format=settings.log_format,
            log_level=settings.log_level,
            stream=sys.stderr,
        )
        create_mcp_server(settings).run("stdio")
        return

    setup_logging(log_format=settings.log_format, log_level=settings.log_level)
    try:
        app = get_app(settings)
    except ConfigurationError as e:
        raise click.ClickException(str(e))

    uvicorn_log_config = get_uvicorn_logging_config(
        log_format=settings.log_format,
        log_level=settings.log_level,
    )

    proxy_options = {}
    if settings.trust_proxy:
        proxy_options = {"proxy_headers": True, "forwarded_allow_ips": "*"}

    uvicorn.run(
        app=app,
        host=host,
        port=port,
        log_level=log_level,
        log_config=uvicorn_log_config,
        **proxy_options,
    )


@click.command("check-config")
def check_config():
    """Validate the environment configuration without starting the server.

    \b
    Examples:
      $ MCP_AUTH_ENABLED=true nextcloud-mcp-gateway check-config
    """
    settings = get_settings()
    mode, errors = validate_configuration(settings)
    click.echo(get_mode_summary(mode))
    click.echo("")
    if errors:
        for error in errors:
            click.echo(click.style(f"✗ {error}", fg="red"), err=True)
        raise click.ClickException(f"{len(errors)} configuration error(s)")
    click.echo(click.style("✓ Configuration is valid", fg="green"))


# Create CLI group with subcommands
cli = click.Group()
cli.add_command(run)
cli.add_command(check_config)


if __name__ == "__main__":
    cli()
