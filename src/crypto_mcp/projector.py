"""Render compiled endpoints as MCP tool listings."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from crypto_mcp.descriptors import EndpointDescriptor, ParameterDescriptor

API_KEY_PARAM = "apiKey"
API_KEY_DESCRIPTION = "CoinCap API key for authentication"


def project(descriptors: Iterable[EndpointDescriptor]) -> list[dict[str, Any]]:
    """Return one ``tools/list`` entry per descriptor.

    Every entry carries an ``inputSchema`` of type ``object`` with one
    property per path/query parameter plus the optional ``apiKey`` credential.
    """
    return [project_one(d) for d in descriptors]


def project_one(descriptor: EndpointDescriptor) -> dict[str, Any]:
    properties: dict[str, Any] = {
        API_KEY_PARAM: {"type": "string", "description": API_KEY_DESCRIPTION},
    }
    required: list[str] = []

    for param in descriptor.parameters:
        if param.name == API_KEY_PARAM:
            continue  # carried by the credential property
        properties[param.name] = _property(param)
        if param.required and param.name not in required:
            required.append(param.name)

    return {
        "name": descriptor.tool_name,
        "description": descriptor.description,
        "inputSchema": {
            "type": "object",
            "properties": properties,
            "required": required,
        },
    }


def _property(param: ParameterDescriptor) -> dict[str, Any]:
    prop: dict[str, Any] = {"type": param.type, "description": param.description}
    if param.enum:
        prop["enum"] = list(param.enum)
        valid = ", ".join(str(v) for v in param.enum)
        prop["description"] = f"{param.description} (valid values: {valid})".lstrip()
    if param.example is not None:
        prop["example"] = param.example
    return prop
