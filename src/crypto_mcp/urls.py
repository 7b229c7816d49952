"""URL building for outbound tool calls.

All percent-encoding and ``?``/``&`` placement lives here so callers never
concatenate query strings by hand.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any
from urllib.parse import quote, urlencode, urlsplit


def format_value(value: Any) -> str:
    """Render an argument value the way the upstream API expects it."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(format_value(v) for v in value)
    return str(value)


def expand_path(template: str, values: Mapping[str, Any]) -> str:
    """Substitute each ``{name}`` in *template* with its percent-encoded value."""
    path = template
    for name, value in values.items():
        path = path.replace("{" + name + "}", quote(format_value(value), safe=""))
    return path


def encode_query(pairs: Iterable[tuple[str, Any]]) -> str:
    return urlencode([(name, format_value(value)) for name, value in pairs])


def compose_url(base: str, path: str, query: str = "") -> str:
    """Join *base* and *path*, adding ``?query`` when the query is non-empty."""
    url = base.rstrip("/") + "/" + path.lstrip("/")
    return f"{url}?{query}" if query else url


def append_query_param(url: str, name: str, value: Any) -> str:
    """Append one ``name=value`` pair, choosing ``?`` or ``&`` as needed."""
    separator = "&" if urlsplit(url).query else "?"
    if url.endswith(("?", "&")):
        separator = ""
    return f"{url}{separator}{urlencode([(name, format_value(value))])}"
