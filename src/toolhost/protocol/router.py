"""MethodRouter — resolves a decoded request to a protocol method and runs it.

Per-call lifecycle: ``Received -> Dispatched -> Completed | Failed``.  Every
failure is converted into an error response here; nothing raised by a tool
collaborator escapes :meth:`MethodRouter.handle` to kill a transport loop.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ValidationError

from toolhost import __version__
from toolhost.protocol.codec import decode, encode
from toolhost.protocol.errors import (
    InternalError,
    InvalidParamsError,
    InvalidRequestError,
    MethodNotFoundError,
    ParseError,
    ProtocolError,
    RequestCancelledError,
)
from toolhost.protocol.models import (
    ImageContent,
    JsonRpcResponse,
    ResourceContent,
    TextContent,
    ToolInvocation,
    ToolResult,
)
from toolhost.protocol.provider import CancellationToken
from toolhost.utils.telemetry import (
    ATTR_RPC_ID,
    ATTR_RPC_METHOD,
    ATTR_RPC_OK,
    ATTR_TOOL_NAME,
    get_tracer,
)

if TYPE_CHECKING:
    from toolhost.hub import BroadcastHub
    from toolhost.protocol.models import JsonRpcRequest, RequestId
    from toolhost.protocol.registry import ToolRegistry

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

PROTOCOL_VERSION = "2024-11-05"

EVENT_COMPLETED = "rpc.completed"
EVENT_FAILED = "rpc.failed"
EVENT_REJECTED = "rpc.rejected"

_CONTENT_TYPES = (TextContent, ImageContent, ResourceContent)


def wrap_result(value: Any) -> ToolResult:
    """Wrap whatever a tool collaborator returned into a :class:`ToolResult`."""
    if isinstance(value, ToolResult):
        return value
    if value is None:
        return ToolResult()
    if isinstance(value, str):
        return ToolResult.from_text(value)
    if isinstance(value, _CONTENT_TYPES):
        return ToolResult(content=[value])
    if isinstance(value, list) and value and all(isinstance(v, _CONTENT_TYPES) for v in value):
        return ToolResult(content=value)
    if isinstance(value, BaseModel):
        return ToolResult.from_text(value.model_dump_json())
    return ToolResult.from_text(json.dumps(value, default=str))


class MethodRouter:
    """Dispatches ``initialize``, ``tools/list``, ``tools/call`` and ``ping``.

    The router holds no per-connection state and is safe to call from many
    concurrent tasks.  After :meth:`close` it refuses new ``tools/call``
    requests so that no tool is entered once shutdown has begun.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        hub: BroadcastHub | None = None,
        server_name: str = "toolhost",
        server_version: str = __version__,
        instructions: str | None = None,
    ) -> None:
        self._registry = registry
        self._hub = hub
        self._server_name = server_name
        self._server_version = server_version
        self._instructions = instructions
        self._closed = False
        self._in_flight = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._active: dict[CancellationToken, RequestId | None] = {}

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def close(self) -> None:
        """Stop accepting new tool calls."""
        self._closed = True

    def cancel_all(self, reason: str = "") -> int:
        """Cancel every call in progress; return how many were signalled."""
        tokens = list(self._active)
        for token in tokens:
            token.cancel(reason)
        return len(tokens)

    async def wait_idle(self, timeout: float | None = None) -> bool:
        """Wait until no call is in flight; ``False`` if *timeout* elapsed first."""
        if self._idle.is_set():
            return True
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout)
        except TimeoutError:
            return False
        return True

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def handle_raw(
        self,
        data: bytes | str,
        *,
        cancellation: CancellationToken | None = None,
    ) -> bytes | None:
        """Decode, dispatch and encode one envelope.

        Returns ``None`` for notifications.  Decode failures produce an error
        response instead of raising.
        """
        try:
            request = decode(data)
        except (ParseError, InvalidRequestError) as exc:
            return encode(self.reject(exc))
        response = await self.handle(request, cancellation=cancellation)
        if response is None:
            return None
        return encode(response)

    def reject(self, exc: ProtocolError) -> JsonRpcResponse:
        """Build the error response for an envelope that could not be decoded."""
        request_id = getattr(exc, "request_id", None)
        logger.warning("Rejected envelope: %s", exc.message)
        self._publish(
            EVENT_REJECTED,
            {"id": request_id, "ok": False, "code": exc.code, "message": exc.message},
        )
        return JsonRpcResponse.failure(request_id, exc.to_error())

    async def handle(
        self,
        request: JsonRpcRequest,
        *,
        cancellation: CancellationToken | None = None,
    ) -> JsonRpcResponse | None:
        """Dispatch one request; return its response, or ``None`` for a notification."""
        token = cancellation.child() if cancellation is not None else CancellationToken()
        self._enter(token, request.id)
        started = time.perf_counter()
        result: Any = None
        error: ProtocolError | None = None

        with _tracer.start_as_current_span("toolhost.dispatch") as span:
            span.set_attribute(ATTR_RPC_METHOD, request.method)
            if request.id is not None:
                span.set_attribute(ATTR_RPC_ID, str(request.id))
            try:
                result = await self._dispatch(request, token, span)
            except ProtocolError as exc:
                error = exc
            except asyncio.CancelledError:
                current = asyncio.current_task()
                if current is not None and current.cancelling():
                    raise
                error = RequestCancelledError(token.reason or "interrupted")
            except Exception as exc:
                logger.exception("Unhandled error dispatching %s", request.method)
                error = InternalError(str(exc) or type(exc).__name__)
            finally:
                self._leave(token)
            span.set_attribute(ATTR_RPC_OK, error is None)

        elapsed_ms = round((time.perf_counter() - started) * 1000, 3)
        self._record(request, error, elapsed_ms)

        if request.is_notification:
            return None
        if error is not None:
            return JsonRpcResponse.failure(request.id, error.to_error())
        return JsonRpcResponse.success(request.id, result)

    # ------------------------------------------------------------------
    # Methods
    # ------------------------------------------------------------------

    async def _dispatch(self, request: JsonRpcRequest, token: CancellationToken, span: Any) -> Any:
        method = request.method
        if method == "initialize":
            return self._initialize()
        if method == "ping":
            return {}
        if method == "tools/list":
            return {"tools": [descriptor.to_wire() for descriptor in self._registry.list()]}
        if method == "tools/call":
            return await self._call_tool(request, token, span)
        if method == "notifications/initialized":
            return None
        if method == "notifications/cancelled":
            self._cancel_request(request.params)
            return None
        raise MethodNotFoundError(method)

    def _initialize(self) -> dict[str, Any]:
        info: dict[str, Any] = {
            "protocolVersion": PROTOCOL_VERSION,
            "serverInfo": {"name": self._server_name, "version": self._server_version},
            "capabilities": {"tools": {"listChanged": False}},
        }
        if self._instructions:
            info["instructions"] = self._instructions
        return info

    async def _call_tool(self, request: JsonRpcRequest, token: CancellationToken, span: Any) -> Any:
        invocation = _parse_invocation(request.params)
        span.set_attribute(ATTR_TOOL_NAME, invocation.name)
        if self._closed:
            raise RequestCancelledError("server is shutting down")
        token.raise_if_cancelled()
        self._registry.get(invocation.name)

        outcome = await self._run_cancellable(
            self._registry.invoke(invocation.name, invocation.arguments, token),
            token,
        )
        return wrap_result(outcome).to_wire()

    @staticmethod
    async def _run_cancellable(coro: Any, token: CancellationToken) -> Any:
        """Await *coro* unless *token* fires first, in which case cancel it."""
        task = asyncio.ensure_future(coro)
        waiter = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
        if task in done:
            return task.result()

        task.add_done_callback(_log_late_failure)
        raise RequestCancelledError(token.reason)

    def _cancel_request(self, params: Any) -> None:
        if not isinstance(params, dict):
            return
        target = params.get("requestId")
        reason = params.get("reason") or "cancelled by caller"
        for token, request_id in list(self._active.items()):
            if request_id is not None and request_id == target:
                token.cancel(str(reason))

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _enter(self, token: CancellationToken, request_id: RequestId | None) -> None:
        self._active[token] = request_id
        self._in_flight += 1
        self._idle.clear()

    def _leave(self, token: CancellationToken) -> None:
        self._active.pop(token, None)
        token.detach()
        self._in_flight -= 1
        if self._in_flight == 0:
            self._idle.set()

    def _record(self, request: JsonRpcRequest, error: ProtocolError | None, elapsed_ms: float) -> None:
        payload: dict[str, Any] = {
            "method": request.method,
            "id": request.id,
            "ok": error is None,
            "elapsedMs": elapsed_ms,
            "notification": request.is_notification,
        }
        if request.method == "tools/call" and isinstance(request.params, dict):
            name = request.params.get("name")
            if isinstance(name, str):
                payload["tool"] = name
        if error is None:
            logger.debug("%s completed in %.1fms", request.method, elapsed_ms)
            self._publish(EVENT_COMPLETED, payload)
            return
        payload["code"] = error.code
        payload["message"] = error.message
        logger.info("%s failed (%d): %s", request.method, error.code, error.message)
        self._publish(EVENT_FAILED, payload)

    def _publish(self, name: str, payload: dict[str, Any]) -> None:
        if self._hub is not None:
            self._hub.publish(name, payload)


def _log_late_failure(task: asyncio.Future[Any]) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.debug("Tool raised after cancellation: %r", task.exception())


def _parse_invocation(params: Any) -> ToolInvocation:
    if not isinstance(params, dict):
        raise InvalidParamsError("tools/call requires an object with 'name' and 'arguments'")
    if params.get("arguments") is None:
        params = {**params, "arguments": {}}
    try:
        return ToolInvocation.model_validate(params)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) or "params" for err in exc.errors())
        raise InvalidParamsError(f"malformed {fields}") from exc
