"""Stdio duplex transport — newline-delimited envelopes on a stream pair.

One session per process.  Lines are handled strictly in order: the next
line is not read until the current response has been written and drained,
so response order always equals request order.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import TYPE_CHECKING, Protocol

from toolhost.protocol.codec import encode_line
from toolhost.protocol.errors import ParseError
from toolhost.protocol.provider import CancellationToken

if TYPE_CHECKING:
    from toolhost.hub import BroadcastHub
    from toolhost.protocol.router import MethodRouter

logger = logging.getLogger(__name__)

DEFAULT_LINE_LIMIT = 16 * 1024 * 1024


class LineWriter(Protocol):
    """The subset of :class:`asyncio.StreamWriter` the session writes through."""

    def write(self, data: bytes) -> None: ...
    async def drain(self) -> None: ...


class StdioServer:
    """Serves one sequential session over a reader/writer pair.

    Usage::

        reader, writer = await connect_stdio()
        server = StdioServer(router, reader, writer)
        await server.run(stop_token)
    """

    def __init__(
        self,
        router: MethodRouter,
        reader: asyncio.StreamReader,
        writer: LineWriter,
        *,
        hub: BroadcastHub | None = None,
    ) -> None:
        self._router = router
        self._reader = reader
        self._writer = writer
        self._hub = hub
        self.lines_handled = 0

    async def run(
        self,
        stop: CancellationToken | None = None,
        *,
        calls: CancellationToken | None = None,
    ) -> None:
        """Read, dispatch and answer lines until EOF, a blank line or *stop* fires.

        *calls* is the session-level token passed to every dispatched call.
        When it is a separate token, a call already running when *stop* fires
        is completed and answered before the loop exits; by default it is
        *stop* itself and the running call is cancelled.
        """
        session = stop or CancellationToken()
        calls = calls or session
        logger.info("Stdio session started")
        reason = "eof"
        while True:
            try:
                line = await self._read_line(session)
            except ParseError as exc:
                await self._send(encode_line(self._router.reject(exc)))
                continue
            except (ConnectionError, OSError) as exc:
                reason = f"read failed: {exc}"
                self._report(reason)
                break

            if line is None:
                reason = session.reason or "cancelled"
                break
            if not line.strip():
                reason = "eof" if not line else "blank line"
                break

            payload = await self._router.handle_raw(line, cancellation=calls)
            self.lines_handled += 1
            if payload is not None and not await self._send(payload):
                reason = "write failed"
                break
            if session.cancelled:
                reason = session.reason or "cancelled"
                break
        logger.info("Stdio session ended (%s) after %d line(s)", reason, self.lines_handled)

    async def _read_line(self, session: CancellationToken) -> bytes | None:
        """Return the next line, or ``None`` if *session* was cancelled first."""
        if session.cancelled:
            return None
        reader = asyncio.ensure_future(self._next_line())
        waiter = asyncio.ensure_future(session.wait())
        try:
            done, _ = await asyncio.wait({reader, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not reader.done():
                reader.cancel()
        if reader in done:
            return reader.result()
        return None

    async def _next_line(self) -> bytes:
        """Read through the next newline; at EOF return the unterminated tail.

        Raises:
            ParseError: the line exceeded the reader limit.  The whole line,
                including bytes that had not arrived yet, has been consumed.
        """
        try:
            return await self._reader.readuntil(b"\n")
        except asyncio.IncompleteReadError as exc:
            return exc.partial
        except asyncio.LimitOverrunError as exc:
            await self._discard_line(exc.consumed)
            raise ParseError("line exceeds the size limit") from exc

    async def _discard_line(self, consumed: int) -> None:
        while True:
            await self._reader.readexactly(consumed)
            try:
                await self._reader.readuntil(b"\n")
                return
            except asyncio.IncompleteReadError:
                return
            except asyncio.LimitOverrunError as exc:
                consumed = exc.consumed

    async def _send(self, payload: bytes) -> bool:
        if not payload.endswith(b"\n"):
            payload += b"\n"
        try:
            self._writer.write(payload)
            await self._writer.drain()
        except (ConnectionError, OSError) as exc:
            self._report(f"write failed: {exc}")
            return False
        return True

    def _report(self, detail: str) -> None:
        logger.error("Stdio transport error: %s", detail)
        if self._hub is not None:
            self._hub.publish("transport.error", {"transport": "stdio", "detail": detail})


async def connect_stdio(
    limit: int = DEFAULT_LINE_LIMIT,
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Wrap the process's stdin/stdout in asyncio streams."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=limit)
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin)
    write_transport, write_protocol = await loop.connect_write_pipe(
        asyncio.streams.FlowControlMixin, sys.stdout
    )
    writer = asyncio.StreamWriter(write_transport, write_protocol, reader, loop)
    return reader, writer
