"""Tool module loading.

A tool module is any importable module exposing ``get_tools()`` (or a
``TOOLS`` sequence) that yields :class:`~toolhost.protocol.provider.Tool`
objects.
"""

from __future__ import annotations

import importlib
from typing import Any

from toolhost.protocol.errors import ToolLoadError
from toolhost.protocol.provider import Tool


def load_tool_module(module_path: str) -> list[Tool]:
    """Import *module_path* and return the tools it provides.

    Raises:
        ToolLoadError: import failure, no tool factory, a failing factory,
            a non-iterable ``TOOLS`` or a non-tool entry.
    """
    try:
        module = importlib.import_module(module_path)
    except Exception as exc:
        raise ToolLoadError(module_path, str(exc) or type(exc).__name__) from exc

    factory = getattr(module, "get_tools", None)
    if not callable(factory) and not hasattr(module, "TOOLS"):
        raise ToolLoadError(module_path, "module defines neither get_tools() nor TOOLS")

    try:
        raw: Any = factory() if callable(factory) else module.TOOLS
        tools = list(raw)
    except Exception as exc:
        raise ToolLoadError(module_path, str(exc) or type(exc).__name__) from exc

    for item in tools:
        if not isinstance(item, Tool):
            raise ToolLoadError(module_path, f"{item!r} does not implement descriptor()/invoke()")
    return tools
