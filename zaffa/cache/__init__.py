"""Local durable cache (the client's storage)."""

from .local_cache import LocalCache, cache_scope

__all__ = ["LocalCache", "cache_scope"]
