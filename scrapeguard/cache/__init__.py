"""Result memoization with expiry."""

from scrapeguard.cache.result_cache import CacheEntry, ResultCache, cache_key

__all__ = ["CacheEntry", "ResultCache", "cache_key"]
