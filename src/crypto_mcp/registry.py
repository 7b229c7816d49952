"""Tool registry with lazy, one-shot asynchronous initialization."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Iterator, Mapping
from typing import Any

from crypto_mcp.descriptors import EndpointDescriptor
from crypto_mcp.importer import SchemaImportError, compile_document

log = logging.getLogger("crypto-mcp")

DocumentLoader = Callable[[], Awaitable[Mapping[str, Any]]]


class ToolRegistry:
    """Read-only mapping of tool name to EndpointDescriptor.

    The mapping is filled by a single import pass. ``ensure_loaded()`` may be
    awaited from any number of entry points: the first caller starts the
    import, concurrent callers await the same in-flight task, and later
    callers return immediately.
    """

    def __init__(self, loader: DocumentLoader) -> None:
        self._loader = loader
        self._tools: dict[str, EndpointDescriptor] = {}
        self._initialized = False
        self._pending: asyncio.Task[None] | None = None

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> ToolRegistry:
        """Build an already-initialized registry from an in-memory document."""

        async def _loader() -> Mapping[str, Any]:
            return document

        registry = cls(_loader)
        registry._tools = compile_document(document)
        registry._initialized = True
        return registry

    @classmethod
    def from_descriptors(cls, descriptors: Iterable[EndpointDescriptor]) -> ToolRegistry:
        """Build an already-initialized registry from compiled descriptors."""
        tools = {d.tool_name: d for d in descriptors}

        async def _loader() -> Mapping[str, Any]:
            raise SchemaImportError("registry was built from descriptors")

        registry = cls(_loader)
        registry._tools = tools
        registry._initialized = True
        return registry

    @property
    def loaded(self) -> bool:
        return self._initialized

    async def ensure_loaded(self) -> None:
        """Fetch and compile the API description once.

        Raises:
            SchemaImportError: if the import fails. The failure is reported to
                every concurrent waiter; a later call starts a fresh attempt.
        """
        if self._initialized:
            return
        if self._pending is None:
            self._pending = asyncio.ensure_future(self._load())
        pending = self._pending
        try:
            await asyncio.shield(pending)
        finally:
            if self._pending is pending and pending.done() and not self._initialized:
                self._pending = None

    async def _load(self) -> None:
        log.debug("Importing API description")
        document = await self._loader()
        tools = compile_document(document)
        # Swap in the complete mapping in one step.
        self._tools = tools
        self._initialized = True

    def get(self, name: str) -> EndpointDescriptor | None:
        return self._tools.get(name)

    def descriptors(self) -> list[EndpointDescriptor]:
        return list(self._tools.values())

    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[EndpointDescriptor]:
        return iter(self.descriptors())

    def __len__(self) -> int:
        return len(self._tools)
