"""Tool collaborator interface and the cancellation token passed to it.

Every tool-provider process supplies one or more objects satisfying the
:class:`Tool` protocol so that the :class:`~toolhost.protocol.router.MethodRouter`
can invoke them without knowing what they do.

Usage::

    @tool(description="Echo the input back")
    async def echo(text: str) -> str:
        return text

    registry.register_tool(echo)
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from toolhost.protocol.errors import RequestCancelledError
from toolhost.protocol.models import ToolDescriptor

if TYPE_CHECKING:
    from toolhost.protocol.models import ToolResult


class CancellationToken:
    """A one-shot cancellation signal, optionally linked to a parent.

    Cancelling a token cancels all of its children; cancelling a child
    leaves the parent untouched.  Collaborators either poll
    :attr:`cancelled` or ``await token.wait()``.
    """

    def __init__(self, parent: CancellationToken | None = None) -> None:
        self._event = asyncio.Event()
        self._reason = ""
        self._parent = parent
        self._children: set[CancellationToken] = set()
        if parent is not None:
            parent._children.add(self)
            if parent.cancelled:
                self.cancel(parent.reason)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "") -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        for child in list(self._children):
            child.cancel(reason)

    async def wait(self) -> None:
        await self._event.wait()

    def child(self) -> CancellationToken:
        return CancellationToken(parent=self)

    def detach(self) -> None:
        """Unlink from the parent once the owning call has finished."""
        if self._parent is not None:
            self._parent._children.discard(self)
            self._parent = None

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise RequestCancelledError(self._reason)


InvokeFn = Callable[[dict[str, Any], CancellationToken], Awaitable[Any]]
DisposeFn = Callable[[], Awaitable[None] | None]


@runtime_checkable
class Tool(Protocol):
    """A named unit of domain behaviour invoked through ``tools/call``."""

    def descriptor(self) -> ToolDescriptor:
        """Return the name, description and input schema of this tool."""
        ...

    async def invoke(self, arguments: dict[str, Any], cancellation: CancellationToken) -> ToolResult | Any:
        """Run the tool.

        The return value is wrapped into a :class:`ToolResult` by the router
        when it is not one already.  Failures should be raised; the registry
        wraps them as :class:`~toolhost.protocol.errors.ToolExecutionError`.
        """
        ...


class FunctionTool:
    """Adapts a plain sync or async callable to the :class:`Tool` protocol.

    Keyword arguments of the call are taken from the ``arguments`` object.
    If the callable accepts a ``cancellation`` parameter the call's token is
    passed through.  Sync callables run inline on the event loop.
    """

    def __init__(
        self,
        fn: Callable[..., Any],
        *,
        name: str | None = None,
        description: str | None = None,
        input_schema: dict[str, Any] | None = None,
        dispose: DisposeFn | None = None,
    ) -> None:
        self._fn = fn
        self._dispose = dispose
        signature = inspect.signature(fn)
        self._wants_cancellation = "cancellation" in signature.parameters
        self._descriptor = ToolDescriptor(
            name=name or fn.__name__,
            description=description if description is not None else inspect.getdoc(fn) or "",
            input_schema=input_schema or _schema_from_signature(signature),
        )

    def descriptor(self) -> ToolDescriptor:
        return self._descriptor

    async def invoke(self, arguments: dict[str, Any], cancellation: CancellationToken) -> Any:
        kwargs = dict(arguments)
        if self._wants_cancellation:
            kwargs["cancellation"] = cancellation
        result = self._fn(**kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def aclose(self) -> None:
        if self._dispose is None:
            return
        outcome = self._dispose()
        if inspect.isawaitable(outcome):
            await outcome


def tool(
    name: str | None = None,
    *,
    description: str | None = None,
    input_schema: dict[str, Any] | None = None,
) -> Callable[[Callable[..., Any]], FunctionTool]:
    """Decorator turning a function into a :class:`FunctionTool`."""

    def decorate(fn: Callable[..., Any]) -> FunctionTool:
        return FunctionTool(fn, name=name, description=description, input_schema=input_schema)

    return decorate


_JSON_TYPES: dict[Any, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    dict: "object",
    list: "array",
    "str": "string",
    "int": "integer",
    "float": "number",
    "bool": "boolean",
    "dict": "object",
    "list": "array",
}


def _schema_from_signature(signature: inspect.Signature) -> dict[str, Any]:
    """Build a best-effort object schema from a function signature."""
    properties: dict[str, Any] = {}
    required: list[str] = []
    for param in signature.parameters.values():
        if param.name == "cancellation" or param.kind in (
            inspect.Parameter.VAR_POSITIONAL,
            inspect.Parameter.VAR_KEYWORD,
        ):
            continue
        prop: dict[str, Any] = {}
        json_type = _JSON_TYPES.get(param.annotation)
        if json_type is not None:
            prop["type"] = json_type
        properties[param.name] = prop
        if param.default is inspect.Parameter.empty:
            required.append(param.name)
    schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema
