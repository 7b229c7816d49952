"""Shared pytest fixtures for the crypto-mcp test suite."""

from __future__ import annotations

import copy
import json
from collections.abc import Callable

import httpx
import pytest

from crypto_mcp.registry import ToolRegistry
from crypto_mcp.router import CallRouter

BASE_URL = "https://api.example.test"

SAMPLE_DOCUMENT: dict = {
    "openapi": "3.0.0",
    "info": {"title": "CoinCap", "version": "3.0"},
    "paths": {
        "/v3/assets": {
            "get": {
                "summary": "List assets",
                "parameters": [
                    {
                        "name": "search",
                        "in": "query",
                        "description": "Search by slug or symbol",
                        "schema": {"type": "string"},
                        "example": "bitcoin",
                    },
                    {"name": "limit", "in": "query", "schema": {"type": "integer"}},
                    {"name": "offset", "in": "query", "schema": {"type": "integer"}},
                ],
            }
        },
        "/v3/assets/{slug}": {
            "get": {
                "summary": "Get asset by slug",
                "parameters": [
                    {
                        "name": "slug",
                        "in": "path",
                        "description": "Asset slug",
                        "schema": {"type": "string", "example": "bitcoin"},
                    }
                ],
            }
        },
        "/v3/assets/{slug}/history": {
            "get": {
                "parameters": [
                    {"name": "slug", "in": "path", "required": True, "schema": {"type": "string"}},
                    {
                        "name": "interval",
                        "in": "query",
                        "required": True,
                        "description": "Candle interval",
                        "schema": {"type": "string", "enum": ["m1", "m5", "h1", "d1"]},
                    },
                    {"name": "start", "in": "query", "schema": {"type": "integer"}},
                    {"name": "end", "in": "query", "required": False, "schema": {"type": "integer"}},
                ],
            }
        },
        "/v3/markets": {
            "get": {
                "summary": "List markets",
                "parameters": [
                    {"name": "exchangeId", "in": "query", "schema": {"type": "string"}},
                    {"name": "limit", "in": "query", "schema": {"type": "integer"}},
                    {"name": "X-Trace", "in": "header", "schema": {"type": "string"}},
                ],
            }
        },
        "/v3/exchanges/{exchange}": {
            "get": {
                "summary": "Get exchange",
                "parameters": [{"name": "exchange", "in": "path", "schema": {"type": "string"}}],
            },
            "post": {"summary": "Not exposed"},
        },
        "/v3/rates": {"post": {"summary": "Write-only endpoint"}},
    },
}


def json_response(data: object, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code=status_code,
        content=json.dumps(data).encode(),
        headers={"content-type": "application/json"},
    )


@pytest.fixture
def document() -> dict:
    return copy.deepcopy(SAMPLE_DOCUMENT)


@pytest.fixture
def registry(document) -> ToolRegistry:
    return ToolRegistry.from_document(document)


@pytest.fixture
def seen() -> list[httpx.Request]:
    """Every request that reached the mock upstream."""
    return []


@pytest.fixture
def make_router(registry, seen) -> Callable[..., CallRouter]:
    """Build a CallRouter whose upstream is an httpx.MockTransport.

    The optional *handler* defaults to a 200 response echoing ``{"data": ...}``.
    """

    def _make(
        handler: Callable[[httpx.Request], httpx.Response] | None = None,
        *,
        registry: ToolRegistry = registry,
        **kwargs,
    ) -> CallRouter:
        def recording(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if handler is None:
                return json_response({"data": {"id": "bitcoin", "rank": "1"}})
            return handler(request)

        return CallRouter(registry, BASE_URL, transport=httpx.MockTransport(recording), **kwargs)

    return _make
