"""Schema importer: fetch an OpenAPI/Swagger description and compile it into tools.

Only ``GET`` operations become tools. Path and query parameters are kept,
every other parameter location is dropped. Malformed entries are logged and
skipped so a single bad path never prevents the server from starting.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

import httpx
import yaml

from crypto_mcp.descriptors import (
    PATH,
    QUERY,
    EndpointDescriptor,
    ParameterDescriptor,
    placeholders,
    tool_name_for_path,
)

log = logging.getLogger("crypto-mcp")

_TYPE_MAP = {"integer": "number", "number": "number", "boolean": "boolean"}


class SchemaImportError(Exception):
    """The API description could not be fetched, parsed or compiled."""


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------


async def fetch_document(
    url: str,
    *,
    timeout: float | None = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, Any]:
    """Download and parse the API description at *url*.

    Raises:
        SchemaImportError: on transport failure, non-2xx status or a body
            that is not a JSON/YAML document with a ``paths`` mapping.
    """
    log.info("Loading API description from %s", url)
    try:
        async with httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
            headers={"Accept": "application/json, application/yaml;q=0.9"},
        ) as client:
            resp = await client.get(url)
    except (httpx.HTTPError, OSError) as exc:
        raise SchemaImportError(
            f"Failed to fetch API description from {url}: {type(exc).__name__}: {exc}"
        ) from exc

    if resp.is_error:
        raise SchemaImportError(
            f"Failed to fetch API description from {url}: "
            f"HTTP {resp.status_code} {resp.reason_phrase}"
        )
    return parse_document(resp.text)


def parse_document(text: str) -> dict[str, Any]:
    """Parse a JSON (or, failing that, YAML) API description."""
    try:
        document = json.loads(text)
    except json.JSONDecodeError:
        try:
            document = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise SchemaImportError(f"API description is neither JSON nor YAML: {exc}") from exc

    if not isinstance(document, dict) or not isinstance(document.get("paths"), dict):
        raise SchemaImportError("API description has no 'paths' mapping")
    return document


# ---------------------------------------------------------------------------
# Compiling
# ---------------------------------------------------------------------------


def compile_document(document: Mapping[str, Any]) -> dict[str, EndpointDescriptor]:
    """Compile every GET operation in *document* into an EndpointDescriptor.

    Returns a mapping of tool name to descriptor. When two paths derive the
    same tool name the later one wins and a warning is logged.

    Raises:
        SchemaImportError: if the document has no ``paths`` mapping or no
            usable GET operation at all.
    """
    paths = document.get("paths")
    if not isinstance(paths, Mapping):
        raise SchemaImportError("API description has no 'paths' mapping")

    tools: dict[str, EndpointDescriptor] = {}
    for path, path_item in paths.items():
        if not isinstance(path_item, Mapping):
            continue
        operation = path_item.get("get")
        if not isinstance(operation, Mapping):
            continue

        descriptor = _compile_operation(document, str(path), path_item, operation)
        if descriptor is None:
            continue

        previous = tools.get(descriptor.tool_name)
        if previous is not None:
            log.warning(
                "Tool name collision: %s from %s replaces %s",
                descriptor.tool_name,
                path,
                previous.path_template,
            )
        tools[descriptor.tool_name] = descriptor

    if not tools:
        raise SchemaImportError("API description defines no usable GET operations")

    log.info("API description compiled, %d tools loaded.", len(tools))
    return tools


def _compile_operation(
    document: Mapping[str, Any],
    path: str,
    path_item: Mapping[str, Any],
    operation: Mapping[str, Any],
) -> EndpointDescriptor | None:
    names = placeholders(path)
    if "" in names:
        log.warning("Skipping %s: empty path placeholder '{}'", path)
        return None
    if len(set(names)) != len(names):
        log.warning("Skipping %s: repeated path placeholder", path)
        return None

    declared_path: dict[str, ParameterDescriptor] = {}
    query_params: list[ParameterDescriptor] = []
    for raw in _merged_parameters(document, path, path_item, operation):
        location = raw.get("in")
        if location == PATH:
            param = _compile_parameter(raw, PATH)
            if param.name not in names:
                log.warning("Dropping path param %s of %s: no matching placeholder", param.name, path)
                continue
            declared_path[param.name] = param
        elif location == QUERY:
            query_params.append(_compile_parameter(raw, QUERY))
        else:
            log.debug("Ignoring %s param %s of %s", location, raw.get("name"), path)

    path_params = list(declared_path.values())
    for name in names:
        if name not in declared_path:
            log.warning("Path %s has undeclared placeholder {%s}, assuming string", path, name)
            path_params.append(ParameterDescriptor(name=name, location=PATH, required=True))

    return EndpointDescriptor(
        tool_name=tool_name_for_path(path),
        description=operation.get("summary") or operation.get("description") or f"Tool for {path}",
        path_template=path,
        path_params=tuple(path_params),
        query_params=tuple(query_params),
    )


def _merged_parameters(
    document: Mapping[str, Any],
    path: str,
    path_item: Mapping[str, Any],
    operation: Mapping[str, Any],
) -> list[Mapping[str, Any]]:
    """Path-level parameters overlaid with operation-level ones, keyed by (name, in)."""
    merged: dict[tuple[str, str], Mapping[str, Any]] = {}
    for source in (path_item.get("parameters"), operation.get("parameters")):
        if source is None:
            continue
        if not isinstance(source, list):
            log.warning(
                "Skipping parameters of %s: expected a list, got %s", path, type(source).__name__
            )
            continue
        for raw in source:
            param = _resolve_ref(document, raw)
            if param is None:
                log.warning("Skipping unresolvable parameter %r of %s", raw, path)
                continue
            name = param.get("name")
            if not isinstance(name, str) or not name:
                log.warning("Skipping unnamed parameter of %s", path)
                continue
            merged[(name, str(param.get("in")))] = param
    return list(merged.values())


def _resolve_ref(document: Mapping[str, Any], raw: Any) -> Mapping[str, Any] | None:
    """Follow a local ``$ref`` (``#/components/parameters/...``) if present."""
    if not isinstance(raw, Mapping):
        return None
    ref = raw.get("$ref")
    if ref is None:
        return raw
    if not isinstance(ref, str) or not ref.startswith("#/"):
        return None

    node: Any = document
    for part in ref[2:].split("/"):
        part = part.replace("~1", "/").replace("~0", "~")
        if not isinstance(node, Mapping) or part not in node:
            return None
        node = node[part]
    return node if isinstance(node, Mapping) else None


def _compile_parameter(raw: Mapping[str, Any], location: str) -> ParameterDescriptor:
    schema = raw.get("schema")
    if not isinstance(schema, Mapping):
        schema = {}

    enum = schema.get("enum") or raw.get("enum")
    if "example" in raw:
        example = raw["example"]
    else:
        example = schema.get("example")

    return ParameterDescriptor(
        name=raw["name"],
        location=location,
        type=_json_type(schema.get("type") or raw.get("type")),
        description=str(raw.get("description") or schema.get("description") or ""),
        # Path params are required by definition; query params only when flagged.
        required=location == PATH or raw.get("required") is True,
        enum=tuple(enum) if isinstance(enum, list) and enum else None,
        example=example,
    )


def _json_type(declared: Any) -> str:
    # OpenAPI 3.1 allows a list such as ["integer", "null"]
    if isinstance(declared, list):
        declared = next((t for t in declared if t != "null"), None)
    if not isinstance(declared, str):
        return "string"
    return _TYPE_MAP.get(declared, "string")
