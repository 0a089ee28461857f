"""``toolhost call`` — invoke one tool in-process through the router."""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Any

import click

from toolhost.cli_commands._config import config_option, resolve_config, tool_option
from toolhost.cli_commands._output import console, print_response


@click.command()
@click.argument("name")
@click.option("--args", "-a", "raw_arguments", default="{}", help="Tool arguments as a JSON object.")
@config_option
@tool_option
def call(
    name: str,
    raw_arguments: str,
    config_path: str | None,
    tool_modules: tuple[str, ...],
) -> None:
    """Call tool NAME once and print its result."""
    from toolhost.lifecycle import ToolHost
    from toolhost.protocol.errors import RegistryError
    from toolhost.protocol.models import JsonRpcRequest, JsonRpcResponse

    try:
        arguments: Any = json.loads(raw_arguments)
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"not valid JSON: {exc.msg}", param_hint="--args") from exc
    if not isinstance(arguments, dict):
        raise click.BadParameter("must be a JSON object", param_hint="--args")

    config = resolve_config(config_path, tools=list(tool_modules) or None)
    request = JsonRpcRequest(
        id=1,
        method="tools/call",
        params={"name": name, "arguments": arguments},
    )

    async def _call() -> JsonRpcResponse | None:
        async with ToolHost(config) as host:
            return await host.router.handle(request)

    try:
        response = asyncio.run(_call())
    except RegistryError as exc:
        console.print(f"[red]Load error:[/red] {exc}")
        sys.exit(1)

    if response is None:
        msg = "no response for tools/call"
        raise click.ClickException(msg)
    print_response(response)
    if response.is_error:
        sys.exit(1)
