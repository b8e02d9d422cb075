"""Tenant-scoped caching.

Importing the package registers the commit-triggered invalidation hooks.
"""

from .tenant_cache import (
    CacheBackend,
    MemoryCacheBackend,
    NullCacheBackend,
    RedisCacheBackend,
    TenantScopedCache,
    get_tenant_cache,
)
from . import invalidation  # noqa: F401

__all__ = [
    "CacheBackend",
    "MemoryCacheBackend",
    "NullCacheBackend",
    "RedisCacheBackend",
    "TenantScopedCache",
    "get_tenant_cache",
]
