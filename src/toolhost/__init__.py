"""toolhost: tool-invocation protocol core for MCP-style tool provider processes."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from toolhost.lifecycle import ToolHost as ToolHost

_EXPORTS = {
    "ToolHost": "toolhost.lifecycle",
}


def __getattr__(name: str) -> object:
    module_path = _EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'toolhost' has no attribute {name!r}")
