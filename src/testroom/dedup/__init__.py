"""Deduplication of concurrent and recently repeated API calls."""

from .cache import (
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_MAX_CACHE_SIZE,
    DedupConfig,
    DedupConfigError,
    RequestDeduplicator,
)
from .keys import build_request_key

__all__ = [
    "DEFAULT_CACHE_TTL_SECONDS",
    "DEFAULT_MAX_CACHE_SIZE",
    "DedupConfig",
    "DedupConfigError",
    "RequestDeduplicator",
    "build_request_key",
]
