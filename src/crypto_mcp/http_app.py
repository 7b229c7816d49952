"""HTTP transport: JSON-RPC ``/mcp`` endpoint plus a health check.

Accepts a single JSON-RPC request, a JSON array batch, or (``text/plain``)
one JSON request per line, answered line by line.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from mcp import types
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from crypto_mcp.importer import SchemaImportError
from crypto_mcp.projector import project
from crypto_mcp.registry import ToolRegistry
from crypto_mcp.router import CallRouter
from crypto_mcp.server import SERVER_FEATURES, SERVER_NAME, SERVER_VERSION

log = logging.getLogger("crypto-mcp")

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


def _error(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


def create_app(registry: ToolRegistry, router: CallRouter) -> Starlette:
    """Build the Starlette application serving *registry* through *router*."""

    async def dispatch(message: Any) -> tuple[int, dict[str, Any] | None]:
        if not isinstance(message, dict) or not isinstance(message.get("method"), str):
            return 400, _error(None, INVALID_REQUEST, "Invalid Request")

        request_id = message.get("id")
        method = message["method"]
        params = message.get("params") or {}
        if method.startswith("notifications/"):
            return 202, None
        if not isinstance(params, dict):
            return 400, _error(request_id, INVALID_PARAMS, "Invalid params")

        try:
            if method == "initialize":
                result: dict[str, Any] = {
                    "protocolVersion": params.get("protocolVersion")
                    or types.LATEST_PROTOCOL_VERSION,
                    "capabilities": {"tools": {}},
                    "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
                }
            elif method == "ping":
                result = {}
            elif method == "tools/list":
                await registry.ensure_loaded()
                result = {"tools": project(registry.descriptors())}
            elif method == "tools/call":
                name = params.get("name")
                arguments = params.get("arguments") or {}
                if not isinstance(name, str) or not isinstance(arguments, dict):
                    return 400, _error(request_id, INVALID_PARAMS, "Invalid params")
                await registry.ensure_loaded()
                result = (await router.invoke(name, arguments)).to_envelope()
            else:
                return 400, _error(request_id, METHOD_NOT_FOUND, "Method not found")
        except SchemaImportError as exc:
            log.error("Router error: %s", exc)
            return 500, _error(request_id, INTERNAL_ERROR, str(exc))
        except Exception as exc:
            log.exception("Unhandled error in %s", method)
            return 500, _error(request_id, INTERNAL_ERROR, str(exc))

        return 200, {"jsonrpc": "2.0", "id": request_id, "result": result}

    async def rpc(request: Request) -> Response:
        body = await request.body()
        if request.headers.get("content-type", "").startswith("text/plain"):
            return await _lines(body)

        try:
            message = json.loads(body)
        except ValueError:
            return JSONResponse(_error(None, PARSE_ERROR, "Parse error"), status_code=400)

        if isinstance(message, list):
            replies = [await dispatch(m) for m in message]
            return JSONResponse([payload for _, payload in replies if payload is not None])

        status, payload = await dispatch(message)
        if payload is None:
            return Response(status_code=status)
        return JSONResponse(payload, status_code=status)

    async def _lines(body: bytes) -> Response:
        out: list[str] = []
        for line in body.decode("utf-8", errors="replace").splitlines():
            if not line.strip():
                continue
            try:
                message = json.loads(line)
            except ValueError:
                out.append(json.dumps(_error(None, PARSE_ERROR, "Parse error")))
                continue
            _, payload = await dispatch(message)
            if payload is not None:
                out.append(json.dumps(payload))
        text = "\n".join(out) + "\n" if out else ""
        return Response(text, media_type="application/x-ndjson")

    async def health(request: Request) -> Response:
        return JSONResponse(
            {
                "status": "ok",
                "server": SERVER_NAME,
                "version": SERVER_VERSION,
                "features": SERVER_FEATURES,
                "tools": len(registry),
            }
        )

    return Starlette(
        routes=[
            Route("/health", health, methods=["GET"]),
            Route("/mcp/health", health, methods=["GET"]),
            Route("/mcp", rpc, methods=["POST"]),
        ],
        middleware=[
            Middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"]),
        ],
    )
