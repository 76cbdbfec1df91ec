"""Time-bounded caches for discovery and aggregation results."""

from crossview.cache.ttl_cache import TTLCache

__all__ = ["TTLCache"]
