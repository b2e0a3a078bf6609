"""Hookguard CLI - Command line interface."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import BinaryIO

import click
import structlog
from rich.console import Console

from hookguard.core.config import DEFAULT_SIGNATURE_HEADER, LOG_LEVELS, GatewayConfig
from hookguard.server.gateway import GatewayServer
from hookguard.webhooks.verifier import sign_payload

console = Console()

BANNER = """
 _                 _                               _
| |__   ___   ___ | | __ __ _ _   _  __ _ _ __ __| |
| '_ \\ / _ \\ / _ \\| |/ // _` | | | |/ _` | '__/ _` |
| | | | (_) | (_) |   <| (_| | |_| | (_| | | | (_| |
|_| |_|\\___/ \\___/|_|\\_\\\\__, |\\__,_|\\__,_|_|  \\__,_|
                       |___/
          Signed webhooks in, forgeries out
"""


def configure_logging(log_level: str) -> None:
    """Route structlog output through a level filter."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
    )


@click.group(invoke_without_command=True)
@click.option(
    "--config", "-c",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to YAML or TOML config file",
)
@click.option(
    "--secret",
    envvar="HOOKGUARD_SECRET",
    help="Shared webhook secret (required)",
)
@click.option("--bind", "-b", default=None, help="Listen address (default: 0.0.0.0:8080)")
@click.option(
    "--upstream",
    "-u",
    default=None,
    help="Forward verified requests to this URL (default: reply 202)",
)
@click.option(
    "--signature-header",
    default=None,
    help=f"Header carrying the signature (default: {DEFAULT_SIGNATURE_HEADER})",
)
@click.option(
    "--max-body-size",
    type=int,
    default=None,
    help="Maximum request body in bytes (default: 25MB)",
)
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(list(LOG_LEVELS), case_sensitive=False),
    default=None,
    help="Log level (default: info)",
)
@click.pass_context
def main(
    ctx: click.Context,
    config_file: str | None,
    secret: str | None,
    bind: str | None,
    upstream: str | None,
    signature_header: str | None,
    max_body_size: int | None,
    log_level: str | None,
):
    """Hookguard - verify webhook signatures before they reach your app.

    Every request must carry an X-Hub-Signature-256 header holding the
    HMAC-SHA256 of its body. Forged, tampered or unsigned requests get a
    403 and never reach the upstream.

    Examples:

        hookguard --secret s3cr3t --upstream http://localhost:9000

        hookguard --config hookguard.yaml

        hookguard sign --secret s3cr3t payload.json
    """
    if ctx.invoked_subcommand is not None:
        return

    overrides = {
        "secret": secret,
        "bind": bind,
        "upstream_url": upstream,
        "signature_header": signature_header,
        "max_body_size": max_body_size,
        "log_level": log_level,
    }
    try:
        if config_file:
            config = GatewayConfig.from_file(config_file, **overrides)
            console.print(f"Loaded config from {config_file}", style="dim")
        else:
            config = GatewayConfig(**{k: v for k, v in overrides.items() if v is not None})
        server = GatewayServer(config)
    except (ValueError, FileNotFoundError) as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(1)

    configure_logging(config.log_level)

    console.print(BANNER, style="cyan")
    console.print(f"Listening on {config.bind}", style="yellow")
    console.print(f"Signature header: {config.signature_header}", style="dim")
    if config.upstream_url:
        console.print(f"Upstream: {config.upstream_url}", style="dim")
    else:
        console.print("Upstream: none (verified requests get 202 Accepted)", style="dim")

    try:
        asyncio.run(run_server(server))
    except KeyboardInterrupt:
        console.print("\nShutting down...", style="yellow")


async def run_server(server: GatewayServer) -> None:
    """Run the gateway until cancelled."""
    try:
        await server.start()
        console.print("Gateway started, press Ctrl+C to stop", style="green")

        await asyncio.Event().wait()
    finally:
        await server.stop()


@main.command()
@click.option("--secret", envvar="HOOKGUARD_SECRET", help="Shared webhook secret")
@click.argument("payload", type=click.File("rb"), default="-")
def sign(secret: str | None, payload: BinaryIO):
    """Print the X-Hub-Signature-256 value for PAYLOAD (file or stdin)."""
    try:
        click.echo(sign_payload(payload.read(), secret or ""))
    except ValueError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(1)


@main.command()
def version():
    """Show version information."""
    from hookguard import __version__

    console.print(BANNER, style="cyan")
    console.print(f"[bold]Version:[/bold] {__version__}")
    console.print(f"[bold]Python:[/bold] {sys.version}")


if __name__ == "__main__":
    main()
