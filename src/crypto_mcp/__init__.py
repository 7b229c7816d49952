"""crypto-mcp: MCP server exposing a cryptocurrency REST API as dynamic tools."""

import argparse
import asyncio
import logging
import os
import sys

from crypto_mcp.importer import SchemaImportError
from crypto_mcp.server import serve

log = logging.getLogger("crypto-mcp")


def main() -> None:
    """CLI entry point: serves over stdio, or over HTTP when --port is given."""
    parser = argparse.ArgumentParser(prog="crypto-mcp", description=__doc__)
    parser.add_argument("--port", type=int, default=None, help="serve JSON-RPC over HTTP")
    parser.add_argument("--host", default="127.0.0.1", help="HTTP bind address")
    args = parser.parse_args()

    # stdout is reserved for the stdio transport
    logging.basicConfig(
        stream=sys.stderr,
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs full request URLs, which may carry the apiKey
    logging.getLogger("httpx").setLevel(logging.WARNING)

    try:
        asyncio.run(serve(args.host, args.port))
    except SchemaImportError as exc:
        log.error("Cannot start: %s", exc)
        sys.exit(1)
