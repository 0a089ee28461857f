"""HTTP transports: unary ``POST /rpc`` and the ``GET /sse`` broadcast stream.

Each ``/rpc`` call is one independent decode/dispatch/encode cycle with no
session state, so calls run concurrently.  ``/sse`` streams hub events to a
connected listener as Server-Sent Events.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse, StreamingResponse

from toolhost.hub import format_sse

if TYPE_CHECKING:
    from toolhost.hub import BroadcastHub, Subscription
    from toolhost.protocol.provider import CancellationToken
    from toolhost.protocol.router import MethodRouter

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def create_app(
    router: MethodRouter,
    hub: BroadcastHub,
    *,
    server_name: str = "toolhost",
    cancellation: CancellationToken | None = None,
) -> FastAPI:
    """Build the ASGI app serving one tool-provider process.

    *cancellation* is the session-level token handed to every call, so that
    process shutdown reaches tools running on behalf of HTTP callers.
    """
    app = FastAPI(title=server_name, docs_url=None, redoc_url=None, openapi_url=None)

    @app.get("/")
    async def index() -> dict[str, object]:
        return {"ok": True, "server": server_name}

    @app.get("/health", response_class=PlainTextResponse)
    async def health() -> str:
        return "OK"

    @app.post("/rpc")
    async def rpc(request: Request) -> Response:
        body = await request.body()
        payload = await router.handle_raw(body, cancellation=cancellation)
        if payload is None:
            return Response(status_code=204)
        return Response(content=payload, media_type="application/json")

    @app.get("/sse")
    async def sse(request: Request, pattern: str = "**") -> StreamingResponse:
        subscription = hub.subscribe(pattern)
        logger.info("SSE listener attached (pattern=%s)", pattern)
        return StreamingResponse(
            _event_stream(request, subscription),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    return app


async def _event_stream(request: Request, subscription: Subscription) -> AsyncIterator[str]:
    async with subscription:
        yield ": connected\n\n"
        try:
            async for event in subscription:
                if await request.is_disconnected():
                    break
                yield format_sse(event)
        except asyncio.CancelledError:
            logger.info("SSE connection closed by client")
            raise
    logger.info("SSE listener detached (dropped=%d)", subscription.dropped)


class HttpServer:
    """Runs an ASGI app under uvicorn until a stop token fires.

    Usage::

        server = HttpServer(app, host="127.0.0.1", port=8765)
        await server.run(stop_token)
    """

    def __init__(self, app: FastAPI, *, host: str, port: int, grace_seconds: float = 5.0) -> None:
        self.host = host
        self.port = port
        config = uvicorn.Config(
            app,
            host=host,
            port=port,
            log_config=None,
            lifespan="off",
            timeout_graceful_shutdown=max(1, int(grace_seconds)),
        )
        self._server = uvicorn.Server(config)

    @property
    def started(self) -> bool:
        return self._server.started

    async def run(self, stop: CancellationToken | None = None) -> None:
        logger.info("HTTP transport listening on http://%s:%d", self.host, self.port)
        watcher = asyncio.ensure_future(self._stop_on(stop)) if stop is not None else None
        try:
            await self._server.serve()
        finally:
            if watcher is not None:
                watcher.cancel()
        logger.info("HTTP transport stopped")

    def stop(self) -> None:
        self._server.should_exit = True

    async def _stop_on(self, stop: CancellationToken) -> None:
        await stop.wait()
        self.stop()
