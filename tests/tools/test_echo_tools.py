"""Tests for the bundled echo tools."""

import asyncio

import pytest

from toolhost.protocol.errors import RequestCancelledError
from toolhost.protocol.provider import CancellationToken
from toolhost.tools.echo import echo, get_tools, sleep


async def test_echo() -> None:
    result = await echo.invoke({"message": "hello"}, CancellationToken())
    assert result == {"echoed": "hello", "length": 5}


async def test_echo_schema() -> None:
    schema = echo.descriptor().input_schema
    assert schema["properties"] == {"message": {"type": "string"}}
    assert "required" not in schema


async def test_sleep_completes() -> None:
    assert await sleep.invoke({"seconds": 0.01}, CancellationToken()) == "slept 0.01s"


async def test_sleep_is_cancellable() -> None:
    token = CancellationToken()
    pending = asyncio.ensure_future(sleep.invoke({"seconds": 10}, token))
    await asyncio.sleep(0)
    token.cancel("stop")
    with pytest.raises(RequestCancelledError, match="stop"):
        await asyncio.wait_for(pending, timeout=1)


def test_get_tools() -> None:
    assert [t.descriptor().name for t in get_tools()] == ["echo", "sleep"]
