"""
Read-through caching for FastAPI route handlers.
"""

import functools
from typing import Callable, Optional, TYPE_CHECKING

from fastapi import Request, Response

from shared.logging import get_logger
from .cache_store import CacheStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


KeyFunction = Callable[[Request], str]


class ReadThroughCache:
    """
    Route decorator factory that backfills a CacheStore from handler payloads.

    Usage::

        read_through = ReadThroughCache(store)

        @router.get("/details")
        @read_through(lambda request: f"dept_details_{request.query_params['dept']}")
        async def details(request: Request, dept: str): ...

    The decorated handler must accept a ``request: Request`` argument. Every
    JSON payload it returns is stored under the request's key before being
    sent. With ``serve_hits`` disabled (the default) the handler runs even on
    a hit, so responses always reflect the database while the cache stays
    warm; enabling it answers hits straight from the store.
    """

    def __init__(
        self,
        store: CacheStore,
        *,
        serve_hits: bool = False,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.serve_hits = serve_hits
        self.metrics = metrics
        self.logger = get_logger("stats.read_through")

    def __call__(self, key_of: KeyFunction) -> Callable:
        def decorator(handler: Callable) -> Callable:
            @functools.wraps(handler)
            async def wrapper(*args, **kwargs):
                request: Request = kwargs["request"]
                key = key_of(request)
                cached, found = self.store.lookup(key)

                request.state.cache_key = key
                request.state.cache_hit = found
                self._record(found, key)

                if found and self.serve_hits:
                    return cached

                payload = await handler(*args, **kwargs)
                if isinstance(payload, Response):
                    return payload

                self.store.set(key, payload)
                return payload

            return wrapper

        return decorator

    def _record(self, hit: bool, key: str) -> None:
        """Log and count a lookup."""
        self.logger.debug("Cache hit" if hit else "Cache miss", key=key)
        if not self.metrics:
            return

        try:
            metric = "cache_hits_total" if hit else "cache_misses_total"
            self.metrics.increment_counter(metric, cache_type="read_through")
        except Exception as exc:  # pragma: no cover - metrics failures should never break reads
            self.logger.debug("Failed to record cache metrics", error=str(exc))
