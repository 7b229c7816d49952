"""MCP server definition: assembles the tool bridge and serves it."""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx
import uvicorn
from mcp import types
from mcp.server import Server
from mcp.server.stdio import stdio_server

from crypto_mcp.importer import fetch_document
from crypto_mcp.projector import project
from crypto_mcp.registry import ToolRegistry
from crypto_mcp.router import CREDENTIAL_IN_QUERY, CallRouter

log = logging.getLogger("crypto-mcp")

SERVER_NAME = "cryptocurrency-mcp-server"
SERVER_VERSION = "0.2.0"
SERVER_FEATURES = ["per-call-api-keys", "dynamic-swagger-tools"]

_DEFAULT_SWAGGER_URL = "https://rest.staging.wagmi.productions/api-docs.json"
_DEFAULT_API_BASE = "https://rest.staging.wagmi.productions"

_INSTRUCTIONS = (
    "Cryptocurrency market data (assets, markets, exchanges, rates, candles). "
    "Tools are generated from the upstream API description; pass your API key "
    "in the optional apiKey argument of any tool."
)


def _swagger_url() -> str:
    return os.environ.get("COINCAP_SWAGGER_URL", _DEFAULT_SWAGGER_URL)


def _api_base() -> str:
    return os.environ.get("COINCAP_API_BASE", _DEFAULT_API_BASE)


def _timeout() -> float | None:
    seconds = float(os.environ.get("COINCAP_TIMEOUT", "30"))
    return seconds if seconds > 0 else None


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")


def build_bridge(
    transport: httpx.AsyncBaseTransport | None = None,
) -> tuple[ToolRegistry, CallRouter]:
    """Create the registry and router configured from environment variables.

    The registry is not loaded yet; call ``ensure_loaded()`` before serving.
    """
    swagger_url = _swagger_url()
    timeout = _timeout()

    async def _load() -> dict[str, Any]:
        return await fetch_document(swagger_url, timeout=timeout, transport=transport)

    registry = ToolRegistry(_load)
    router = CallRouter(
        registry,
        _api_base(),
        timeout=timeout,
        credential_mode=os.environ.get("COINCAP_CREDENTIAL_MODE", CREDENTIAL_IN_QUERY),
        require_api_key=_env_flag("COINCAP_REQUIRE_API_KEY"),
        default_api_key=os.environ.get("COINCAP_API_KEY"),
        transport=transport,
    )
    return registry, router


def create_server(registry: ToolRegistry, router: CallRouter) -> Server:
    """Register ``tools/list`` and ``tools/call`` handlers on a low-level MCP server."""
    server = Server(SERVER_NAME, version=SERVER_VERSION, instructions=_INSTRUCTIONS)

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        await registry.ensure_loaded()
        return [types.Tool(**entry) for entry in project(registry.descriptors())]

    # Presence checks belong to the router so errors keep their one-line form.
    @server.call_tool(validate_input=False)
    async def call_tool(name: str, arguments: dict[str, Any]) -> types.CallToolResult:
        await registry.ensure_loaded()
        result = await router.invoke(name, arguments)
        return result.to_call_tool_result()

    return server


async def run_stdio(server: Server) -> None:
    async with stdio_server() as (read_stream, write_stream):
        log.info("MCP server ready via stdio")
        await server.run(read_stream, write_stream, server.create_initialization_options())


async def serve(host: str = "127.0.0.1", port: int | None = None) -> None:
    """Load the registry, then serve over stdio (default) or HTTP when *port* is set.

    Raises:
        SchemaImportError: if the API description cannot be imported.
    """
    from crypto_mcp.http_app import create_app

    registry, router = build_bridge()
    await registry.ensure_loaded()

    if port is None:
        await run_stdio(create_server(registry, router))
        return

    config = uvicorn.Config(create_app(registry, router), host=host, port=port, log_config=None)
    log.info("HTTP MCP server running at http://%s:%d/mcp", host, port)
    await uvicorn.Server(config).serve()
