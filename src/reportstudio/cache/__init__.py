"""Result cache: TTL entries, single-flight computation, pattern invalidation."""

from reportstudio.cache.keys import make_cache_key, resource_pattern, tenant_pattern
from reportstudio.cache.manager import Cache, CacheEntry, CacheManager, CacheStats

__all__ = [
    "Cache",
    "CacheEntry",
    "CacheManager",
    "CacheStats",
    "make_cache_key",
    "resource_pattern",
    "tenant_pattern",
]
