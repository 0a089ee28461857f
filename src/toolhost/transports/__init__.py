"""Transport bindings for the stdio duplex stream and HTTP unary/broadcast."""

from toolhost.transports.http import HttpServer, create_app
from toolhost.transports.stdio import StdioServer, connect_stdio

__all__ = [
    "HttpServer",
    "StdioServer",
    "connect_stdio",
    "create_app",
]
