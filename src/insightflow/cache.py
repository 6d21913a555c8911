"""
Read-through cache of canonical analytics payloads with offline fallback.

Entries never expire. A successful fetch overwrites the entry; a fetch that
fails for connectivity reasons falls back to whatever was stored last,
however old.
"""
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Generic, TypeVar

import diskcache as dc
from pydantic import TypeAdapter, ValidationError

from .errors import ConnectivityError

logger = logging.getLogger(__name__)

T = TypeVar("T")

CACHE_SIZE_LIMIT = 256 * 1024 * 1024  # 256MB


class CacheKind(str, Enum):
    WEBSITES = "websites"
    STATS = "stats"
    SPARKLINE = "sparkline"
    SERIES = "series"
    METRICS = "metrics"
    ACTIVE_VISITORS = "active_visitors"


@dataclass(frozen=True)
class CacheKey:
    """Namespaces an entry by account, then by site and range where relevant."""
    account_id: str
    entity_id: str | None = None
    range_id: str | None = None


@dataclass
class CachedValue(Generic[T]):
    data: T
    cached_at: datetime


@dataclass
class CachedResult(Generic[T]):
    """Outcome of a read-through fetch.

    is_offline is set when the network was unreachable; data is then the
    cached payload, or None if nothing had been cached.
    """
    data: T | None
    cached_at: datetime | None = None
    is_offline: bool = False
    from_cache: bool = False


class AnalyticsCache:
    """diskcache-backed store keyed by (account, kind, entity, range)."""

    def __init__(self, cache_dir: Path | str):
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.disk_cache = dc.Cache(str(self.cache_dir), size_limit=CACHE_SIZE_LIMIT)
        self._adapters: dict[Any, TypeAdapter] = {}

    def _adapter(self, payload_type: Any) -> TypeAdapter:
        adapter = self._adapters.get(payload_type)
        if adapter is None:
            adapter = self._adapters[payload_type] = TypeAdapter(payload_type)
        return adapter

    @staticmethod
    def _cache_key(kind: CacheKind, key: CacheKey) -> str:
        return "|".join([key.account_id, CacheKind(kind).value, key.entity_id or "", key.range_id or ""])

    def save(self, kind: CacheKind, key: CacheKey, payload: Any, payload_type: Any) -> None:
        entry = {
            "payload": self._adapter(payload_type).dump_python(payload, mode="json"),
            "cached_at": datetime.now().isoformat(),
        }
        self.disk_cache.set(self._cache_key(kind, key), entry, tag=key.account_id)

    def load(self, kind: CacheKind, key: CacheKey, payload_type: Any) -> CachedValue | None:
        entry = self.disk_cache.get(self._cache_key(kind, key))
        if entry is None:
            logger.debug(f"Cache miss for {kind.value} {key}")
            return None
        try:
            return CachedValue(
                data=self._adapter(payload_type).validate_python(entry["payload"]),
                cached_at=datetime.fromisoformat(entry["cached_at"]),
            )
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            logger.warning(f"Discarding unreadable cache entry for {kind.value} {key}: {e}")
            self.disk_cache.delete(self._cache_key(kind, key))
            return None

    async def read_through(
        self,
        kind: CacheKind,
        key: CacheKey,
        payload_type: Any,
        fetch: Callable[[], Awaitable[T]],
        on_cached: Callable[[CachedValue], Awaitable[None] | None] | None = None,
    ) -> CachedResult[T]:
        """Serve the cached value to on_cached, then fetch and store fresh data.

        Only ConnectivityError degrades to the cached value; every other error,
        cancellation included, propagates.
        """
        cached = self.load(kind, key, payload_type)
        if cached is not None and on_cached is not None:
            result = on_cached(cached)
            if inspect.isawaitable(result):
                await result

        try:
            data = await fetch()
        except ConnectivityError as e:
            logger.warning(f"Offline while fetching {kind.value} {key}: {e}")
            if cached is None:
                return CachedResult(data=None, is_offline=True)
            return CachedResult(data=cached.data, cached_at=cached.cached_at, is_offline=True, from_cache=True)

        self.save(kind, key, data, payload_type)
        return CachedResult(data=data, cached_at=datetime.now())

    def clear_account(self, account_id: str) -> int:
        """Drop every entry of one account; returns the number removed."""
        return self.disk_cache.evict(account_id)

    def clear(self) -> int:
        return self.disk_cache.clear()

    def size(self) -> int:
        return len(self.disk_cache)

    def close(self) -> None:
        self.disk_cache.close()
