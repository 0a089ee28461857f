"""Shared CLI output formatters."""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console
from rich.table import Table

from toolhost.protocol.models import JsonRpcResponse, ToolDescriptor  # noqa: TC001

console = Console()
err_console = Console(stderr=True)


def print_tools_table(tools: list[ToolDescriptor]) -> None:
    """Pretty-print tool descriptors as a table."""
    table = Table(title="Registered Tools")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Parameters")

    for tool in tools:
        properties: dict[str, Any] = tool.input_schema.get("properties", {})
        required = set(tool.input_schema.get("required", []))
        params = ", ".join(f"{name}*" if name in required else name for name in properties) or "-"
        table.add_row(tool.name, _truncate(tool.description), params)

    console.print(table)


def print_tools_json(tools: list[ToolDescriptor]) -> None:
    console.print_json(json.dumps([t.to_wire() for t in tools]))


def print_response(response: JsonRpcResponse) -> None:
    """Print a response: text content for tool results, JSON otherwise."""
    if response.error is not None:
        console.print(f"[red]Error {response.error.code}:[/red] {response.error.message}")
        return
    result = response.result
    if isinstance(result, dict) and isinstance(result.get("content"), list):
        for block in result["content"]:
            if block.get("type") == "text":
                console.print(block.get("text", ""), markup=False, highlight=False, soft_wrap=True)
            else:
                console.print_json(json.dumps(block))
        if result.get("isError"):
            console.print("[yellow](tool reported an error)[/yellow]")
        return
    console.print_json(json.dumps(result, default=str))


def _truncate(text: str, max_len: int = 80) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
