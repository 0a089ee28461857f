"""``toolhost tools`` — inspect the tools a configuration provides."""

from __future__ import annotations

import asyncio
import sys

import click

from toolhost.cli_commands._config import config_option, resolve_config, tool_option
from toolhost.cli_commands._output import console, print_tools_json, print_tools_table


@click.group()
def tools() -> None:
    """Inspect registered tools."""


@tools.command("list")
@config_option
@tool_option
@click.option("--json", "as_json", is_flag=True, help="Print descriptors as JSON.")
def list_tools(config_path: str | None, tool_modules: tuple[str, ...], as_json: bool) -> None:
    """List tools in registration order, as ``tools/list`` would return them."""
    from toolhost.lifecycle import ToolHost
    from toolhost.protocol.errors import RegistryError
    from toolhost.protocol.models import ToolDescriptor

    config = resolve_config(config_path, tools=list(tool_modules) or None)

    async def _load() -> list[ToolDescriptor]:
        async with ToolHost(config) as host:
            return host.registry.list()

    try:
        descriptors = asyncio.run(_load())
    except RegistryError as exc:
        console.print(f"[red]Load error:[/red] {exc}")
        sys.exit(1)

    if as_json:
        print_tools_json(descriptors)
        return

    if not descriptors:
        console.print("[yellow]No tools registered.[/yellow]")
        return

    print_tools_table(descriptors)
