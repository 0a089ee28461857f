"""``toolhost serve`` — run a tool-provider process."""

from __future__ import annotations

import asyncio
import sys

import click

from toolhost.cli_commands._config import config_option, resolve_config, tool_option
from toolhost.cli_commands._output import err_console


@click.command()
@config_option
@tool_option
@click.option(
    "--transport",
    type=click.Choice(["stdio", "http"]),
    default=None,
    help="Primary transport (default: from config, else stdio).",
)
@click.option("--host", default=None, help="HTTP bind address.")
@click.option("--port", type=int, default=None, help="HTTP port.")
@click.option("--log-level", default=None, help="Logging level (DEBUG, INFO, ...).")
@click.option("--telemetry", is_flag=True, help="Enable tracing.")
def serve(
    config_path: str | None,
    tool_modules: tuple[str, ...],
    transport: str | None,
    host: str | None,
    port: int | None,
    log_level: str | None,
    telemetry: bool,
) -> None:
    """Serve the configured tools until EOF or a termination signal."""
    from toolhost.lifecycle import ToolHost
    from toolhost.protocol.errors import RegistryError
    from toolhost.utils.logging import configure_logging

    config = resolve_config(
        config_path,
        transport=transport,
        host=host,
        port=port,
        log_level=log_level,
        tools=list(tool_modules) or None,
    )

    try:
        configure_logging(config.log_level)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--log-level") from exc

    if telemetry or config.telemetry.enabled:
        from toolhost.utils.telemetry import configure_telemetry

        try:
            configure_telemetry(
                service_name=config.name,
                export_to_console=config.telemetry.otlp_endpoint is None,
                otlp_endpoint=config.telemetry.otlp_endpoint,
            )
        except ImportError as exc:
            err_console.print(f"[red]Telemetry error:[/red] {exc}")
            sys.exit(1)

    tool_host = ToolHost(config)
    try:
        asyncio.run(tool_host.run())
    except RegistryError as exc:
        err_console.print(f"[red]Startup error:[/red] {exc}")
        sys.exit(1)
    except KeyboardInterrupt:
        err_console.print("[yellow]Interrupted.[/yellow]")
