"""ToolHost — process lifecycle for one tool-provider process.

Owns startup (registry construction, hub, router, transport selection) and
graceful shutdown (stop the transport loop, drain in-flight calls, cancel
stragglers, run disposal hooks exactly once).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from collections.abc import Iterable
from typing import TYPE_CHECKING

from toolhost.config import HostConfig
from toolhost.hub import BroadcastHub
from toolhost.loader import load_tool_module
from toolhost.protocol.errors import RegistryError
from toolhost.protocol.provider import CancellationToken
from toolhost.protocol.registry import ToolRegistry
from toolhost.protocol.router import MethodRouter
from toolhost.transports.http import HttpServer, create_app
from toolhost.transports.stdio import StdioServer, connect_stdio

if TYPE_CHECKING:
    from fastapi import FastAPI

    from toolhost.protocol.provider import Tool
    from toolhost.transports.stdio import LineWriter

logger = logging.getLogger(__name__)


class ToolHost:
    """Builds the protocol core around a set of tools and serves it.

    Usage::

        host = ToolHost(HostConfig(transport="stdio"), tools=[echo])
        await host.run()            # returns after EOF or a signal

        async with ToolHost(config) as host:
            response = await host.router.handle(request)
    """

    def __init__(
        self,
        config: HostConfig | None = None,
        *,
        tools: Iterable[Tool] = (),
    ) -> None:
        self.config = config or HostConfig()
        self._extra_tools = list(tools)
        self._registry: ToolRegistry | None = None
        self._hub: BroadcastHub | None = None
        self._router: MethodRouter | None = None
        self._stop = CancellationToken()
        self._calls = CancellationToken()
        self._started = False
        self._shutting_down = False
        self._closed = asyncio.Event()
        self._signal_tasks: set[asyncio.Task[None]] = set()

    async def __aenter__(self) -> ToolHost:
        await self.start()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.shutdown("context exit")

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def registry(self) -> ToolRegistry:
        if self._registry is None:
            msg = "ToolHost not started"
            raise RuntimeError(msg)
        return self._registry

    @property
    def hub(self) -> BroadcastHub:
        if self._hub is None:
            msg = "ToolHost not started"
            raise RuntimeError(msg)
        return self._hub

    @property
    def router(self) -> MethodRouter:
        if self._router is None:
            msg = "ToolHost not started"
            raise RuntimeError(msg)
        return self._router

    @property
    def started(self) -> bool:
        return self._started

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Build and freeze the registry, create the hub and router.  Idempotent."""
        if self._started:
            return
        if self._shutting_down:
            msg = "ToolHost has been shut down"
            raise RuntimeError(msg)

        registry = ToolRegistry()
        try:
            for module_path in self.config.tools:
                for tool in load_tool_module(module_path):
                    registry.register_tool(tool)
            for tool in self._extra_tools:
                registry.register_tool(tool)
        except RegistryError:
            await registry.dispose()
            raise
        registry.freeze()

        self._registry = registry
        self._hub = BroadcastHub(buffer_size=self.config.hub.buffer_size)
        self._router = MethodRouter(
            registry,
            hub=self._hub,
            server_name=self.config.name,
            server_version=self.config.version,
            instructions=self.config.instructions,
        )
        self._started = True
        logger.info(
            "%s started with %d tool(s): %s",
            self.config.name,
            len(registry),
            ", ".join(registry.names()) or "-",
        )

    def create_app(self) -> FastAPI:
        """Build the HTTP app bound to this host's router and hub."""
        return create_app(
            self.router,
            self.hub,
            server_name=self.config.name,
            cancellation=self._calls,
        )

    # ------------------------------------------------------------------
    # Serving
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Start, serve the configured primary transport, then shut down."""
        await self.start()
        try:
            if self.config.transport == "http":
                await self.serve_http()
            else:
                self._install_signal_handlers()
                await self.serve_stdio()
        finally:
            await self.shutdown("transport closed")
            await self.wait_closed()

    async def serve_stdio(
        self,
        reader: asyncio.StreamReader | None = None,
        writer: LineWriter | None = None,
    ) -> None:
        """Serve one stdio session; defaults to the process's stdin/stdout."""
        await self.start()
        if reader is None or writer is None:
            reader, writer = await connect_stdio(self.config.stdio.max_line_bytes)
        server = StdioServer(self.router, reader, writer, hub=self.hub)
        await server.run(self._stop, calls=self._calls)

    async def serve_http(self) -> None:
        """Serve the unary and broadcast endpoints until shutdown."""
        await self.start()
        server = HttpServer(
            self.create_app(),
            host=self.config.http.host,
            port=self.config.http.port,
            grace_seconds=self.config.shutdown_grace_seconds,
        )
        await server.run(self._stop)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def shutdown(self, reason: str = "shutdown") -> None:
        """Stop serving and release resources.  The second call is a no-op."""
        if self._shutting_down:
            return
        self._shutting_down = True
        logger.info("Shutting down %s (%s)", self.config.name, reason)

        self._stop.cancel(reason)
        try:
            if self._router is not None:
                self._router.close()
                grace = self.config.shutdown_grace_seconds
                if not await self._router.wait_idle(grace):
                    pending = self._router.in_flight
                    logger.warning("Cancelling %d call(s) still running after %.1fs", pending, grace)
                    self._calls.cancel(reason)
                    self._router.cancel_all(reason)
                    await self._router.wait_idle(grace)
            if self._hub is not None:
                self._hub.close()
            if self._registry is not None:
                await self._registry.dispose()
        finally:
            self._remove_signal_handlers()
            self._closed.set()
            logger.info("%s shut down", self.config.name)

    async def wait_closed(self) -> None:
        await self._closed.wait()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.add_signal_handler(sig, self._on_signal, sig)

    def _remove_signal_handlers(self) -> None:
        with contextlib.suppress(RuntimeError):
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
                    loop.remove_signal_handler(sig)

    def _on_signal(self, sig: signal.Signals) -> None:
        task = asyncio.ensure_future(self.shutdown(f"signal {sig.name}"))
        self._signal_tasks.add(task)
        task.add_done_callback(self._signal_tasks.discard)
