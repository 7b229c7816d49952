"""Compiled representation of upstream REST operations."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

_VERSION_PREFIX = re.compile(r"^/v\d+/")
_PLACEHOLDER = re.compile(r"\{([^{}]*)\}")

PATH = "path"
QUERY = "query"


@dataclass(frozen=True, slots=True)
class ParameterDescriptor:
    """One path or query parameter of an upstream operation."""

    name: str
    location: str  # PATH or QUERY
    type: str = "string"
    description: str = ""
    required: bool = False
    enum: tuple[Any, ...] | None = None
    example: Any = None


@dataclass(frozen=True, slots=True)
class EndpointDescriptor:
    """One upstream GET operation exposed as a tool."""

    tool_name: str
    description: str
    path_template: str
    path_params: tuple[ParameterDescriptor, ...] = ()
    query_params: tuple[ParameterDescriptor, ...] = ()

    @property
    def parameters(self) -> tuple[ParameterDescriptor, ...]:
        return self.path_params + self.query_params


def tool_name_for_path(path: str) -> str:
    """Derive a tool name from an API path.

    ``/v3/assets/{slug}/markets`` becomes ``assets_slug_markets``.
    """
    name = _VERSION_PREFIX.sub("", path).lstrip("/")
    return name.replace("/", "_").replace("{", "").replace("}", "")


def placeholders(path: str) -> list[str]:
    """Return the ``{name}`` placeholders of *path* in order (empty names included)."""
    return _PLACEHOLDER.findall(path)
