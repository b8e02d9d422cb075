"""Tenant-partitioned cache.

Every key embeds the tenant and a per-(tenant, kind) generation number::

    tenantcache:{tenant}:{kind}:{generation}:{key}

Invalidating ``"*"`` increments the generation, which orphans every entry
of that tenant and kind at once (they expire through their TTL) while
entries of other tenants keep their generation and stay valid.

Backend failures never fail a request: reads degrade to a miss and writes
to a no-op, with a warning and a metric.
"""

import json
import logging
import threading
import time
from collections import OrderedDict
from functools import lru_cache
from typing import Any, Callable, Iterable, Optional, Tuple
from uuid import UUID

from redis import Redis, RedisError

from config import get_settings
from observability.metrics import cache_errors_total, cache_invalidations_total, cache_requests_total
from tenancy.errors import TenantContextMissingError

logger = logging.getLogger(__name__)

KEY_PREFIX = "tenantcache"
WILDCARD = "*"

# Errors a backend may raise that degrade to a miss instead of failing the request
BACKEND_ERRORS = (RedisError, OSError)


class CacheBackend:
    """Minimal key/value store used by ``TenantScopedCache``. Values are strings."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def incr(self, key: str) -> int:
        raise NotImplementedError


class RedisCacheBackend(CacheBackend):
    def __init__(self, client: Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCacheBackend":
        return cls(Redis.from_url(url, decode_responses=True, socket_timeout=1.0, socket_connect_timeout=1.0))

    def get(self, key: str) -> Optional[str]:
        return self.client.get(key)

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        if ttl:
            self.client.setex(key, ttl, value)
        else:
            self.client.set(key, value)

    def delete(self, key: str) -> None:
        self.client.delete(key)

    def incr(self, key: str) -> int:
        return int(self.client.incr(key))


class MemoryCacheBackend(CacheBackend):
    """In-process LRU cache with per-entry TTL, for single-process deployments and tests."""

    def __init__(self, max_entries: int = 5000, clock: Callable[[], float] = time.monotonic):
        self._entries: "OrderedDict[str, Tuple[str, Optional[float]]]" = OrderedDict()
        self._max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            self._entries[key] = (value, expires_at)
            # Evict least recently used
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def incr(self, key: str) -> int:
        with self._lock:
            value, expires_at = self._entries.get(key, ("0", None))
            new_value = int(value) + 1
            self._entries[key] = (str(new_value), expires_at)
            self._entries.move_to_end(key)
            return new_value

    def __len__(self) -> int:
        return len(self._entries)


class NullCacheBackend(CacheBackend):
    """Caching disabled: every read misses."""

    def get(self, key: str) -> Optional[str]:
        return None

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        return None

    def delete(self, key: str) -> None:
        return None

    def incr(self, key: str) -> int:
        return 0


class TenantScopedCache:
    """Cache whose entries are partitioned by tenant and entity kind."""

    def __init__(self, backend: CacheBackend, default_ttl: Optional[int] = None):
        self.backend = backend
        self.default_ttl = default_ttl if default_ttl is not None else get_settings().CACHE_DEFAULT_TTL_SECONDS

    @staticmethod
    def _require_tenant(tenant_id: Optional[UUID]) -> UUID:
        if tenant_id is None:
            raise TenantContextMissingError("Cache access requires a tenant")
        return tenant_id

    @staticmethod
    def generation_key(tenant_id: UUID, kind: str) -> str:
        return f"{KEY_PREFIX}:{tenant_id}:{kind}:generation"

    def _generation(self, tenant_id: UUID, kind: str) -> int:
        raw = self.backend.get(self.generation_key(tenant_id, kind))
        return int(raw) if raw else 0

    def _entry_key(self, tenant_id: UUID, kind: str, key: Any) -> str:
        return f"{KEY_PREFIX}:{tenant_id}:{kind}:{self._generation(tenant_id, kind)}:{key}"

    def _degraded(self, operation: str, exc: BaseException) -> None:
        cache_errors_total.labels(operation=operation).inc()
        logger.warning(
            "Cache backend unavailable, continuing without cache",
            extra={"operation": operation, "error": type(exc).__name__},
        )

    def get(self, tenant_id: Optional[UUID], kind: str, key: Any) -> Optional[Any]:
        """Return the cached value or None on a miss (or backend failure)."""
        tenant_id = self._require_tenant(tenant_id)
        try:
            entry_key = self._entry_key(tenant_id, kind, key)
        except BACKEND_ERRORS as exc:
            self._degraded("get", exc)
            cache_requests_total.labels(kind=kind, result="miss").inc()
            return None
        return self._read(entry_key, kind)

    def _read(self, entry_key: str, kind: str) -> Optional[Any]:
        try:
            raw = self.backend.get(entry_key)
        except BACKEND_ERRORS as exc:
            self._degraded("get", exc)
            cache_requests_total.labels(kind=kind, result="miss").inc()
            return None

        if raw is None:
            cache_requests_total.labels(kind=kind, result="miss").inc()
            return None
        try:
            value = json.loads(raw)
        except ValueError as exc:
            self._degraded("decode", exc)
            cache_requests_total.labels(kind=kind, result="miss").inc()
            return None
        cache_requests_total.labels(kind=kind, result="hit").inc()
        return value

    def _write(self, entry_key: str, value: Any, ttl: Optional[int]) -> None:
        payload = json.dumps(value, default=str)
        try:
            self.backend.set(entry_key, payload, ttl or self.default_ttl)
        except BACKEND_ERRORS as exc:
            self._degraded("set", exc)

    def set(self, tenant_id: Optional[UUID], kind: str, key: Any, value: Any, ttl: Optional[int] = None) -> None:
        tenant_id = self._require_tenant(tenant_id)
        try:
            entry_key = self._entry_key(tenant_id, kind, key)
        except BACKEND_ERRORS as exc:
            self._degraded("set", exc)
            return
        self._write(entry_key, value, ttl)

    def invalidate(self, tenant_id: Optional[UUID], kind: str, key: Any = WILDCARD) -> None:
        """Drop one key, or every key of the tenant and kind when key is ``"*"``."""
        tenant_id = self._require_tenant(tenant_id)
        try:
            if key == WILDCARD:
                self.backend.incr(self.generation_key(tenant_id, kind))
                cache_invalidations_total.labels(kind=kind, scope="all").inc()
            else:
                self.backend.delete(self._entry_key(tenant_id, kind, key))
                cache_invalidations_total.labels(kind=kind, scope="key").inc()
        except BACKEND_ERRORS as exc:
            self._degraded("invalidate", exc)

    def clear_tenant(self, tenant_id: Optional[UUID], kinds: Iterable[str]) -> None:
        """Invalidate every listed kind of one tenant, e.g. when it is suspended."""
        tenant_id = self._require_tenant(tenant_id)
        for kind in kinds:
            self.invalidate(tenant_id, kind, WILDCARD)
        logger.info("Cleared tenant cache", extra={"tenant_id": str(tenant_id)})

    def get_or_load(
        self,
        tenant_id: Optional[UUID],
        kind: str,
        key: Any,
        loader: Callable[[], Any],
        ttl: Optional[int] = None,
    ) -> Any:
        """Read-through: return the cached value or call ``loader`` and cache its result.

        The entry is written under the generation read before loading, so a
        value loaded across an invalidation is never visible afterwards.
        ``None`` results are not cached.
        """
        tenant_id = self._require_tenant(tenant_id)
        try:
            entry_key = self._entry_key(tenant_id, kind, key)
        except BACKEND_ERRORS as exc:
            self._degraded("get", exc)
            cache_requests_total.labels(kind=kind, result="miss").inc()
            return loader()

        value = self._read(entry_key, kind)
        if value is not None:
            return value
        value = loader()
        if value is not None:
            self._write(entry_key, value, ttl)
        return value


def build_backend(backend_name: str) -> CacheBackend:
    settings = get_settings()
    if backend_name == "redis":
        return RedisCacheBackend.from_url(settings.REDIS_URL)
    if backend_name == "memory":
        return MemoryCacheBackend(max_entries=settings.CACHE_MEMORY_MAX_ENTRIES)
    if backend_name == "none":
        return NullCacheBackend()
    raise ValueError(f"Unknown cache backend '{backend_name}'")


@lru_cache()
def get_tenant_cache() -> TenantScopedCache:
    """Process-wide cache built from settings.

    Call get_tenant_cache.cache_clear() after changing CACHE_BACKEND.
    """
    settings = get_settings()
    return TenantScopedCache(build_backend(settings.CACHE_BACKEND), settings.CACHE_DEFAULT_TTL_SECONDS)
