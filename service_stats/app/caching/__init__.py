"""
Statistics caching package.

Holds the process-wide memoization table, the preloader that fills it at
startup, and the read-through decorator consulted by route handlers. Entries
never expire; invalidation is explicit (delete, clear, refresh).
"""

from .cache_store import CacheStore
from .preloader import CachePreloader
from .read_through import ReadThroughCache

__all__ = ["CacheStore", "CachePreloader", "ReadThroughCache"]
