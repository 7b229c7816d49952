"""Call router: turn a tool invocation into an upstream GET request.

``CallRouter.invoke()`` never raises. Every failure is reported as a
``ToolResult`` whose ``error_kind`` is set, so one bad call cannot end the
hosting MCP session.
"""

from __future__ import annotations

import enum
import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx
from mcp import types

from crypto_mcp import urls
from crypto_mcp.descriptors import EndpointDescriptor
from crypto_mcp.projector import API_KEY_PARAM
from crypto_mcp.registry import ToolRegistry

log = logging.getLogger("crypto-mcp")

CREDENTIAL_IN_QUERY = "query"
CREDENTIAL_IN_HEADER = "header"

_MAX_DIAGNOSTIC_CHARS = 200
_API_KEY_VALUE = re.compile(r"(apiKey=)[^&]*")


class ErrorKind(enum.Enum):
    UNKNOWN_TOOL = "unknown_tool"
    MISSING_PARAMETER = "missing_parameter"
    UPSTREAM_HTTP = "upstream_http"
    TRANSPORT = "transport"


@dataclass(frozen=True, slots=True)
class ToolResult:
    """Outcome of one tool call: a JSON payload or a one-line error message."""

    text: str
    error_kind: ErrorKind | None = None

    @property
    def is_error(self) -> bool:
        return self.error_kind is not None

    @classmethod
    def ok(cls, text: str) -> ToolResult:
        return cls(text=text)

    @classmethod
    def error(cls, kind: ErrorKind, message: str) -> ToolResult:
        return cls(text=message, error_kind=kind)

    def to_envelope(self) -> dict[str, Any]:
        """Plain-dict result for JSON-RPC responses."""
        envelope: dict[str, Any] = {"content": [{"type": "text", "text": self.text}]}
        if self.is_error:
            envelope["isError"] = True
        return envelope

    def to_call_tool_result(self) -> types.CallToolResult:
        return types.CallToolResult(
            content=[types.TextContent(type="text", text=self.text)],
            isError=self.is_error,
        )


class ToolCallError(Exception):
    """A per-call failure; converted to a ToolResult by CallRouter.invoke()."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


class CallRouter:
    """Resolve tool calls against a ToolRegistry and execute them over HTTP.

    Args:
        registry: Source of EndpointDescriptors.
        base_url: Upstream API root; descriptor paths are appended to it.
        timeout: Per-request timeout in seconds (``None`` disables it).
        credential_mode: ``"query"`` sends the key as ``apiKey=...``,
            ``"header"`` sends ``Authorization: Bearer ...``.
        require_api_key: Reject calls that carry no key at all.
        default_api_key: Key used when the caller does not supply one.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        registry: ToolRegistry,
        base_url: str,
        *,
        timeout: float | None = 30.0,
        credential_mode: str = CREDENTIAL_IN_QUERY,
        require_api_key: bool = False,
        default_api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if credential_mode not in (CREDENTIAL_IN_QUERY, CREDENTIAL_IN_HEADER):
            raise ValueError(f"Unsupported credential mode: {credential_mode!r}")
        self._registry = registry
        self._base_url = base_url
        self._timeout = timeout
        self._credential_mode = credential_mode
        self._require_api_key = require_api_key
        self._default_api_key = default_api_key or None
        self._transport = transport

    async def invoke(self, name: str, args: Mapping[str, Any] | None) -> ToolResult:
        descriptor = self._registry.get(name)
        if descriptor is None:
            log.warning("Unknown tool requested: %s", name)
            return ToolResult.error(ErrorKind.UNKNOWN_TOOL, f"Unknown tool: {name}")

        try:
            url, headers = self.prepare(descriptor, args or {})
            log.info("Calling %s -> %s", name, _API_KEY_VALUE.sub(r"\1***", url))
            payload = await self._get(url, headers)
        except ToolCallError as exc:
            log.error("Tool %s failed: %s", name, exc.message)
            return ToolResult.error(exc.kind, exc.message)

        return ToolResult.ok(json.dumps(payload, indent=2, ensure_ascii=False))

    def prepare(
        self, descriptor: EndpointDescriptor, args: Mapping[str, Any]
    ) -> tuple[str, dict[str, str]]:
        """Build the final URL and extra request headers for a call.

        Raises:
            ToolCallError: if a required argument is missing.
        """
        path_values: dict[str, Any] = {}
        for param in descriptor.path_params:
            value = args.get(param.name)
            if _is_missing(value):
                raise ToolCallError(
                    ErrorKind.MISSING_PARAMETER, f"Missing required param: {param.name}"
                )
            path_values[param.name] = value

        query: list[tuple[str, Any]] = []
        for param in descriptor.query_params:
            if param.name == API_KEY_PARAM:
                continue
            value = args.get(param.name)
            if param.required and _is_missing(value):
                raise ToolCallError(
                    ErrorKind.MISSING_PARAMETER, f"Missing required param: {param.name}"
                )
            # optional params are sent whenever present, empty strings included
            if value is None:
                continue
            query.append((param.name, value))

        url = urls.compose_url(
            self._base_url,
            urls.expand_path(descriptor.path_template, path_values),
            urls.encode_query(query),
        )
        return self._with_credential(url, args)

    def _with_credential(
        self, url: str, args: Mapping[str, Any]
    ) -> tuple[str, dict[str, str]]:
        api_key = args.get(API_KEY_PARAM)
        if _is_missing(api_key):
            api_key = self._default_api_key
        if api_key is None:
            if self._require_api_key:
                raise ToolCallError(
                    ErrorKind.MISSING_PARAMETER, f"Missing required param: {API_KEY_PARAM}"
                )
            return url, {}

        if self._credential_mode == CREDENTIAL_IN_HEADER:
            return url, {"Authorization": f"Bearer {api_key}"}
        return urls.append_query_param(url, API_KEY_PARAM, api_key), {}

    async def _get(self, url: str, headers: dict[str, str]) -> Any:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
                headers={"Accept": "application/json"},
            ) as client:
                resp = await client.get(url, headers=headers)
        except (httpx.HTTPError, OSError) as exc:
            raise ToolCallError(
                ErrorKind.TRANSPORT, _one_line(f"Request failed: {type(exc).__name__}: {exc}")
            ) from exc

        if not resp.is_success:
            message = f"HTTP {resp.status_code} {resp.reason_phrase}".rstrip()
            diagnostic = _diagnostic(resp)
            if diagnostic:
                message = f"{message}: {diagnostic}"
            raise ToolCallError(ErrorKind.UPSTREAM_HTTP, message)

        try:
            return resp.json()
        except ValueError as exc:
            raise ToolCallError(
                ErrorKind.UPSTREAM_HTTP,
                f"HTTP {resp.status_code}: upstream returned a non-JSON body",
            ) from exc


def _is_missing(value: Any) -> bool:
    return value is None or value == ""


def _diagnostic(resp: httpx.Response) -> str:
    """Best-effort one-line explanation taken from an error response body."""
    text = resp.text
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("error", "message", "detail"):
            if body.get(key):
                text = str(body[key])
                break
    return _one_line(text)


def _one_line(text: str) -> str:
    text = " ".join(text.split())
    if len(text) > _MAX_DIAGNOSTIC_CHARS:
        text = text[:_MAX_DIAGNOSTIC_CHARS] + "…"
    return text
