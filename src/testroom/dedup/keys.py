"""Canonical request keys for deduplication."""

from __future__ import annotations

import json
from typing import Any, Mapping


def build_request_key(method: str, url: str, params: Mapping[Any, Any] | None = None) -> str:
    """Build a key that ignores parameter ordering.

    ``GET /x {"b": 2, "a": 1}`` and ``GET /x {"a": 1, "b": 2}`` map to the
    same key. Parameter names are compared as strings, so ``{1: "a"}`` and
    ``{"1": "a"}`` share a key. The method is used exactly as given.
    """
    if not isinstance(method, str) or not method.strip():
        raise ValueError("method is required")
    if not isinstance(url, str) or not url:
        raise ValueError("url is required")

    normalized = {str(name): value for name, value in (params or {}).items()}
    serialized = json.dumps(normalized, sort_keys=True, separators=(",", ":"), default=str)
    return f"{method.strip()}_{url}_{serialized}"
