"""Shared error types for the protocol core.

Every failure that reaches the router boundary is one of the
:class:`ProtocolError` subclasses below, each mapped to a fixed
``Error.code``.  Startup failures (duplicate tools, frozen registry,
unloadable tool modules) are plain exceptions that abort the process
before any transport is mounted.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from toolhost.protocol.models import JsonRpcError, RequestId

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
TOOL_EXECUTION_ERROR = -32000
TOOL_NOT_FOUND = -32001
REQUEST_CANCELLED = -32800


class ProtocolError(Exception):
    """Base error for all protocol-layer failures."""

    code: int = INTERNAL_ERROR

    def __init__(self, message: str = "", *, data: Any = None) -> None:
        self.message = message or self.__class__.__name__
        self.data = data
        super().__init__(self.message)

    def to_error(self) -> JsonRpcError:
        """Convert to the wire-level error object."""
        from toolhost.protocol.models import JsonRpcError

        return JsonRpcError(code=self.code, message=self.message, data=self.data)


class ParseError(ProtocolError):
    """The envelope is not valid UTF-8 JSON, or not a JSON object."""

    code = PARSE_ERROR

    def __init__(self, detail: str = "") -> None:
        super().__init__("Parse error" + (f": {detail}" if detail else ""))


class InvalidRequestError(ProtocolError):
    """Structurally valid JSON that is not a usable request."""

    code = INVALID_REQUEST

    def __init__(self, detail: str = "", *, request_id: RequestId | None = None) -> None:
        self.request_id = request_id
        super().__init__("Invalid request" + (f": {detail}" if detail else ""))


class MethodNotFoundError(ProtocolError):
    code = METHOD_NOT_FOUND

    def __init__(self, method: str) -> None:
        self.method = method
        super().__init__(f"Method not found: {method}")


class InvalidParamsError(ProtocolError):
    """``tools/call`` params are missing or have the wrong shape."""

    code = INVALID_PARAMS

    def __init__(self, detail: str) -> None:
        super().__init__(f"Invalid params: {detail}")


class InternalError(ProtocolError):
    """Catch-all for failures that have no better classification."""

    code = INTERNAL_ERROR

    def __init__(self, detail: str = "") -> None:
        super().__init__("Internal error" + (f": {detail}" if detail else ""))


class ToolNotFoundError(ProtocolError):
    """Requested tool does not exist in the registry."""

    code = TOOL_NOT_FOUND

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool not found: {name}")


class ToolExecutionError(ProtocolError):
    """A tool collaborator failed; its message is passed through."""

    code = TOOL_EXECUTION_ERROR

    def __init__(self, name: str, detail: str = "") -> None:
        self.name = name
        self.detail = detail
        super().__init__(f"Tool execution failed: {name}" + (f": {detail}" if detail else ""))


class RequestCancelledError(ProtocolError):
    """The call was interrupted by session or call-level cancellation."""

    code = REQUEST_CANCELLED

    def __init__(self, reason: str = "") -> None:
        self.reason = reason
        super().__init__("Request cancelled" + (f": {reason}" if reason else ""))


# ---------------------------------------------------------------------------
# Startup errors, never converted into responses
# ---------------------------------------------------------------------------


class RegistryError(Exception):
    """Base error for tool registration failures."""


class DuplicateToolError(RegistryError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool already registered: {name}")


class RegistryFrozenError(RegistryError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Registry is frozen, cannot register: {name}")


class ToolLoadError(RegistryError):
    """A configured tool module could not be imported or exposes no tools."""

    def __init__(self, module: str, detail: str = "") -> None:
        self.module = module
        self.detail = detail
        super().__init__(f"Cannot load tools from {module}" + (f": {detail}" if detail else ""))
