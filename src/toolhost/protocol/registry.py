"""ToolRegistry — the name-to-tool map built once at startup.

The registry is populated while the process starts, then frozen.  After
:meth:`ToolRegistry.freeze` it is read-only, so concurrent lookups from the
unary transport need no locking.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from toolhost.protocol.errors import (
    DuplicateToolError,
    ProtocolError,
    RegistryFrozenError,
    ToolExecutionError,
    ToolNotFoundError,
)

if TYPE_CHECKING:
    from toolhost.protocol.models import ToolDescriptor
    from toolhost.protocol.provider import CancellationToken, DisposeFn, InvokeFn, Tool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Entry:
    descriptor: ToolDescriptor
    invoke: InvokeFn


class ToolRegistry:
    """Maintains the registered tools and their disposal hooks.

    Usage::

        registry = ToolRegistry()
        registry.register_tool(sqlite_query)
        registry.register(descriptor, invoke_fn, dispose=close_browser)
        registry.freeze()

        tools = registry.list()                          # registration order
        result = await registry.invoke("read_query", {"sql": "..."}, token)
    """

    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}
        self._disposers: list[DisposeFn] = []
        self._frozen = False
        self._disposed = False

    def register(
        self,
        descriptor: ToolDescriptor,
        invoke_fn: InvokeFn,
        *,
        dispose: DisposeFn | None = None,
    ) -> None:
        """Add a tool.  Duplicate names abort startup."""
        name = descriptor.name
        if self._frozen:
            raise RegistryFrozenError(name)
        if name in self._entries:
            raise DuplicateToolError(name)
        self._entries[name] = _Entry(descriptor=descriptor, invoke=invoke_fn)
        if dispose is not None:
            self._disposers.append(dispose)
        logger.debug("Registered tool: %s", name)

    def register_tool(self, tool: Tool) -> None:
        """Register a :class:`~toolhost.protocol.provider.Tool` collaborator.

        An ``aclose()`` method on the tool becomes its disposal hook.
        """
        dispose = getattr(tool, "aclose", None)
        self.register(tool.descriptor(), tool.invoke, dispose=dispose)

    def add_disposer(self, dispose: DisposeFn) -> None:
        """Register a resource release hook that is not tied to one tool."""
        if self._frozen:
            raise RegistryFrozenError("<disposer>")
        self._disposers.append(dispose)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def names(self) -> list[str]:
        return list(self._entries)

    def list(self) -> list[ToolDescriptor]:
        """Return all descriptors in registration order (a fresh list per call)."""
        return [entry.descriptor for entry in self._entries.values()]

    def get(self, name: str) -> ToolDescriptor:
        entry = self._entries.get(name)
        if entry is None:
            raise ToolNotFoundError(name)
        return entry.descriptor

    async def invoke(
        self,
        name: str,
        arguments: dict[str, Any],
        cancellation: CancellationToken,
    ) -> Any:
        """Run the named tool and return whatever the collaborator returned.

        Raises:
            ToolNotFoundError: no tool is registered under *name*.
            ToolExecutionError: the collaborator raised (timeouts included).
        """
        entry = self._entries.get(name)
        if entry is None:
            raise ToolNotFoundError(name)
        try:
            return await entry.invoke(arguments, cancellation)
        except (ProtocolError, asyncio.CancelledError):
            raise
        except TimeoutError as exc:
            raise ToolExecutionError(name, str(exc) or "timed out") from exc
        except Exception as exc:
            logger.warning("Tool %s failed: %s", name, exc, exc_info=True)
            raise ToolExecutionError(name, str(exc) or type(exc).__name__) from exc

    async def dispose(self) -> None:
        """Run every disposal hook once, most recently registered first."""
        if self._disposed:
            return
        self._disposed = True
        for dispose in reversed(self._disposers):
            try:
                outcome = dispose()
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.exception("Disposal hook %r failed", dispose)
