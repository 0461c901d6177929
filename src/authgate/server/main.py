"""authgate server - Main entry point."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import click
import structlog
from aiohttp import web
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from authgate.core.config import GatewayConfig, get_config, load_config_from_file
from authgate.server.app import create_app

console = Console()

LOG_LEVELS = ["debug", "info", "warning", "error"]


def _configure_logging(log_level: str) -> None:
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
    )


def _load_config(config_file: str | None, **overrides: Any) -> GatewayConfig:
    """Merge a config file (if any) with command line overrides.

    Without either, the cached environment configuration is used.
    """
    overrides = {k: v for k, v in overrides.items() if v is not None}
    try:
        if config_file is None and not overrides:
            config = get_config()
        else:
            data = load_config_from_file(config_file) if config_file else {}
            data.update(overrides)
            config = GatewayConfig(**data)
        config.provider_configs()
        return config
    except (ValueError, FileNotFoundError, ValidationError) as e:
        raise click.ClickException(str(e)) from e


config_option = click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(exists=True),
    help="Path to YAML or TOML config file",
)


@click.group()
def main():
    """authgate - OAuth2 login and refresh-token gateway."""


@main.command()
@config_option
@click.option("--host", default=None, help="Bind host (default: 0.0.0.0)")
@click.option("--port", "-p", type=int, default=None, help="Bind port (default: 7000)")
@click.option("--base-url", default=None, help="Public base URL used for IdP redirects")
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="info",
    help="Log level (default: info)",
)
def serve(
    config_file: str | None,
    host: str | None,
    port: int | None,
    base_url: str | None,
    log_level: str,
):
    """Run the authentication gateway."""
    _configure_logging(log_level)
    config = _load_config(config_file, host=host, port=port, base_url=base_url)

    if not config.providers:
        console.print("No providers configured, nothing to serve", style="red")
        raise SystemExit(1)

    cookies = config.cookie_settings()
    console.print(f"Starting authgate on {config.host}:{config.port}...", style="yellow")
    console.print(f"Base URL: {config.base_url}", style="dim")
    console.print(f"Providers: {', '.join(config.providers)}", style="dim")
    console.print(
        f"Cookies: domain={cookies.domain}, secure={cookies.secure}, samesite={cookies.same_site}",
        style="dim",
    )
    if not cookies.secure:
        console.print("Warning: cookies are not Secure; use https in production", style="red")

    try:
        asyncio.run(run_server(config))
    except KeyboardInterrupt:
        console.print("\nShutting down...", style="yellow")


async def run_server(config: GatewayConfig):
    """Run the gateway until cancelled."""
    app = create_app(config)
    runner = web.AppRunner(app)
    await runner.setup()

    try:
        site = web.TCPSite(runner, config.host, config.port)
        await site.start()
        console.print("Server started, press Ctrl+C to stop", style="green")

        await asyncio.Event().wait()
    finally:
        await runner.cleanup()


@main.command()
@config_option
def providers(config_file: str | None):
    """List configured providers and their routes."""
    config = _load_config(config_file)

    if not config.providers:
        console.print("No providers configured", style="yellow")
        return

    table = Table(title="Configured providers")
    table.add_column("Provider", style="cyan")
    table.add_column("Type")
    table.add_column("Client ID")
    table.add_column("Start")
    table.add_column("Callback")

    for provider_config in config.provider_configs():
        provider_id = provider_config.provider_id
        table.add_row(
            provider_id,
            config.providers[provider_id].type,
            provider_config.options.client_id,
            f"/auth/{provider_id}/start",
            f"{config.base_url}/auth/{provider_id}/handler/frame",
        )

    console.print(table)


@main.command("config")
@config_option
def show_config(config_file: str | None):
    """Show the effective configuration (secrets omitted)."""
    config = _load_config(config_file)
    console.print_json(data=config.to_display_dict())


if __name__ == "__main__":
    main()
