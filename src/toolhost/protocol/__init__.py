"""Protocol core: envelope codec, tool registry and method router."""

from toolhost.protocol.codec import decode, decode_response, encode, encode_line
from toolhost.protocol.errors import (
    InternalError,
    InvalidParamsError,
    InvalidRequestError,
    MethodNotFoundError,
    ParseError,
    ProtocolError,
    RequestCancelledError,
    ToolExecutionError,
    ToolNotFoundError,
)
from toolhost.protocol.models import (
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
    TextContent,
    ToolDescriptor,
    ToolInvocation,
    ToolResult,
)
from toolhost.protocol.provider import CancellationToken, FunctionTool, Tool, tool
from toolhost.protocol.registry import ToolRegistry
from toolhost.protocol.router import MethodRouter

__all__ = [
    "CancellationToken",
    "FunctionTool",
    "InternalError",
    "InvalidParamsError",
    "InvalidRequestError",
    "JsonRpcError",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "MethodNotFoundError",
    "MethodRouter",
    "ParseError",
    "ProtocolError",
    "RequestCancelledError",
    "TextContent",
    "Tool",
    "ToolDescriptor",
    "ToolExecutionError",
    "ToolInvocation",
    "ToolNotFoundError",
    "ToolRegistry",
    "ToolResult",
    "decode",
    "decode_response",
    "encode",
    "encode_line",
    "tool",
]
