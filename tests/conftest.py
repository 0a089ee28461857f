"""Shared fixtures for toolhost tests."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from toolhost.hub import BroadcastHub
from toolhost.protocol.models import ToolDescriptor
from toolhost.protocol.provider import CancellationToken, FunctionTool
from toolhost.protocol.registry import ToolRegistry
from toolhost.protocol.router import MethodRouter


class RecordingTool:
    """A tool double that records its calls and optionally sleeps or fails."""

    def __init__(
        self,
        name: str,
        *,
        result: Any = "ok",
        delay: float = 0.0,
        error: Exception | None = None,
    ) -> None:
        self._descriptor = ToolDescriptor(name=name, description=f"{name} tool")
        self.result = result
        self.delay = delay
        self.error = error
        self.calls: list[dict[str, Any]] = []
        self.tokens: list[CancellationToken] = []
        self.closed = 0

    def descriptor(self) -> ToolDescriptor:
        return self._descriptor

    async def invoke(self, arguments: dict[str, Any], cancellation: CancellationToken) -> Any:
        self.calls.append(arguments)
        self.tokens.append(cancellation)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result

    async def aclose(self) -> None:
        self.closed += 1


class MemoryWriter:
    """Collects bytes written by a transport."""

    def __init__(self) -> None:
        self.buffer = bytearray()

    def write(self, data: bytes) -> None:
        self.buffer.extend(data)

    async def drain(self) -> None:
        await asyncio.sleep(0)

    @property
    def lines(self) -> list[bytes]:
        return [line for line in bytes(self.buffer).split(b"\n") if line]


def feed_reader(*lines: bytes, eof: bool = True) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    for line in lines:
        reader.feed_data(line if line.endswith(b"\n") else line + b"\n")
    if eof:
        reader.feed_eof()
    return reader


@pytest.fixture
def hub() -> BroadcastHub:
    return BroadcastHub(buffer_size=16)


@pytest.fixture
def echo_tool() -> FunctionTool:
    async def echo(message: str = "") -> str:
        return message

    return FunctionTool(echo, description="Echo the message back")


@pytest.fixture
def registry(echo_tool: FunctionTool) -> ToolRegistry:
    reg = ToolRegistry()
    reg.register_tool(echo_tool)
    reg.freeze()
    return reg


@pytest.fixture
def router(registry: ToolRegistry, hub: BroadcastHub) -> MethodRouter:
    return MethodRouter(registry, hub=hub, server_name="test-server", server_version="9.9.9")


@pytest.fixture
def make_tool() -> type[RecordingTool]:
    return RecordingTool


@pytest.fixture
def writer() -> MemoryWriter:
    return MemoryWriter()


@pytest.fixture
def make_reader() -> Any:
    return feed_reader
