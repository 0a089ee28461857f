"""Echo tools, a minimal reference tool module.

Use this as a template for a tool provider.  It is also handy for testing
a transport by hand::

    toolhost serve --tool toolhost.tools.echo
    {"jsonrpc":"2.0","id":1,"method":"tools/call","params":{"name":"echo","arguments":{"message":"hi"}}}
"""

from __future__ import annotations

import asyncio
from typing import Any

from toolhost.protocol.errors import RequestCancelledError
from toolhost.protocol.provider import CancellationToken, Tool, tool


@tool(description="Echoes back the input message. Useful for testing.")
async def echo(message: str = "") -> dict[str, Any]:
    return {"echoed": message, "length": len(message)}


@tool(
    description="Wait for the given number of seconds, then report how long it slept.",
    input_schema={
        "type": "object",
        "properties": {"seconds": {"type": "number", "minimum": 0}},
        "required": ["seconds"],
    },
)
async def sleep(seconds: float, cancellation: CancellationToken) -> str:
    try:
        await asyncio.wait_for(cancellation.wait(), timeout=float(seconds))
    except TimeoutError:
        return f"slept {seconds}s"
    raise RequestCancelledError(cancellation.reason)


def get_tools() -> list[Tool]:
    return [echo, sleep]
