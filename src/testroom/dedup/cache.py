"""In-flight sharing and short-lived result caching for API calls."""

from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Mapping, TypeVar

from .keys import build_request_key

logger = logging.getLogger(__name__)

DEFAULT_MAX_CACHE_SIZE = 100
DEFAULT_CACHE_TTL_SECONDS = 30.0

T = TypeVar("T")
Thunk = Callable[[], Awaitable[Any]]


class DedupConfigError(ValueError):
    """Raised when deduplicator settings are invalid."""


@dataclass(frozen=True)
class DedupConfig:
    """Capacity and time-to-live for the completed-result cache."""

    max_cache_size: int = DEFAULT_MAX_CACHE_SIZE
    cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS

    def __post_init__(self) -> None:
        if self.max_cache_size < 1:
            raise DedupConfigError("max_cache_size must be >= 1")
        if self.cache_ttl_seconds < 0:
            raise DedupConfigError("cache_ttl_seconds must be >= 0")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "DedupConfig":
        source = os.environ if env is None else env
        raw_size = source.get("DEDUP_MAX_CACHE_SIZE", "").strip()
        raw_ttl = source.get("DEDUP_CACHE_TTL_SECONDS", "").strip()

        try:
            max_cache_size = int(raw_size) if raw_size else DEFAULT_MAX_CACHE_SIZE
            cache_ttl_seconds = float(raw_ttl) if raw_ttl else DEFAULT_CACHE_TTL_SECONDS
        except ValueError as exc:
            raise DedupConfigError(
                "DEDUP_MAX_CACHE_SIZE must be an integer and DEDUP_CACHE_TTL_SECONDS a number"
            ) from exc

        return cls(max_cache_size=max_cache_size, cache_ttl_seconds=cache_ttl_seconds)


@dataclass(frozen=True)
class _CacheEntry(Generic[T]):
    result: T
    completed_at: float


class RequestDeduplicator:
    """Share one in-flight call per key and reuse recent successful results.

    Failures are never cached and reach every caller awaiting the key. The
    maps are only touched from the event loop thread.
    """

    def __init__(
        self,
        *,
        max_cache_size: int = DEFAULT_MAX_CACHE_SIZE,
        cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        config = DedupConfig(max_cache_size=max_cache_size, cache_ttl_seconds=cache_ttl_seconds)
        self.max_cache_size = config.max_cache_size
        self.cache_ttl_seconds = config.cache_ttl_seconds
        self._clock = clock
        self._in_flight: dict[str, asyncio.Future[Any]] = {}
        self._completed: dict[str, _CacheEntry[Any]] = {}

    @classmethod
    def from_config(cls, config: DedupConfig, *, clock: Callable[[], float] = time.monotonic) -> "RequestDeduplicator":
        return cls(
            max_cache_size=config.max_cache_size,
            cache_ttl_seconds=config.cache_ttl_seconds,
            clock=clock,
        )

    @property
    def cache_size(self) -> int:
        return len(self._completed)

    def is_request_in_progress(self, key: str) -> bool:
        return key in self._in_flight

    def get_cached_result(self, key: str) -> Any | None:
        """Return an unexpired cached result, or None."""
        hit, result = self._lookup(key)
        return result if hit else None

    def cache_result(self, key: str, result: Any) -> None:
        self._completed.pop(key, None)
        while len(self._completed) >= self.max_cache_size:
            oldest_key = next(iter(self._completed))
            del self._completed[oldest_key]
        self._completed[key] = _CacheEntry(result=result, completed_at=self._clock())

    def clear_cache(self) -> None:
        self._in_flight.clear()
        self._completed.clear()
        logger.debug("Request deduplication cache cleared")

    async def deduplicate(
        self,
        method: str,
        url: str,
        params: Mapping[str, Any] | None,
        thunk: Thunk,
    ) -> Any:
        key = build_request_key(method, url, params)

        pending = self._in_flight.get(key)
        if pending is not None:
            logger.debug("Request already in progress, sharing result: %s", key)
            return await asyncio.shield(pending)

        hit, cached = self._lookup(key)
        if hit:
            logger.debug("Using cached result: %s", key)
            return cached

        logger.debug("Making new request: %s", key)
        future = asyncio.ensure_future(thunk())
        self._in_flight[key] = future
        future.add_done_callback(lambda done, key=key: self._settle(key, done))
        return await asyncio.shield(future)

    def _lookup(self, key: str) -> tuple[bool, Any]:
        entry = self._completed.get(key)
        if entry is None:
            return False, None
        if self._clock() - entry.completed_at >= self.cache_ttl_seconds:
            return False, None
        return True, entry.result

    def _settle(self, key: str, future: asyncio.Future[Any]) -> None:
        if self._in_flight.get(key) is future:
            del self._in_flight[key]

        if future.cancelled():
            return
        if future.exception() is not None:
            logger.debug("Request failed, not caching: %s", key)
            return
        self.cache_result(key, future.result())
