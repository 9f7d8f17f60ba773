"""
Statistics API service.
"""

import asyncio
from typing import Dict, Optional

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import CacheInitializationError

from .adapters.postgres_client import DataSource, PostgresDataSource
from .caching.cache_store import CacheStore
from .caching.preloader import CachePreloader
from .caching.read_through import ReadThroughCache
from .routes.cache_admin import create_cache_admin_router
from .routes.statistics import create_statistics_router


class StatsService(BaseService):
    """Statistics API service implementation."""

    def __init__(
        self,
        *,
        config: Optional[ServiceConfig] = None,
        data_source: Optional[DataSource] = None,
        cache_store: Optional[CacheStore] = None,
    ):
        super().__init__("stats", 3000, config=config)

        self.data_source = data_source or PostgresDataSource(
            self.config.postgres_dsn,
            min_size=self.config.db_pool_min_size,
            max_size=self.config.db_pool_max_size,
            command_timeout=self.config.db_command_timeout,
        )
        self.cache_store = cache_store if cache_store is not None else CacheStore()
        self.preloader = CachePreloader(
            self.cache_store,
            self.data_source,
            country=self.config.cache_preload_country,
            concurrency=self.config.cache_preload_concurrency,
            metrics=self.metrics,
        )
        self.read_through = ReadThroughCache(
            self.cache_store,
            serve_hits=self.config.cache_serve_hits,
            metrics=self.metrics,
        )
        self._preload_task: Optional[asyncio.Task] = None

        @self.app.on_event("startup")
        async def _startup():
            if self.config.cache_preload_on_startup:
                self.start_preload()

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.stop_preload()
            close = getattr(self.data_source, "close", None)
            if close is not None:
                await close()

        self._setup_stats_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.stats_service = self

    def _setup_stats_routes(self):
        """Set up statistics and cache administration routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "stats",
                "message": "Statistics API",
                "version": "1.0.0",
                "cache_entries": len(self.cache_store),
            }

        self.app.include_router(create_cache_admin_router(self.cache_store, self.preloader))
        self.app.include_router(
            create_statistics_router(self.cache_store, self.preloader, self.read_through)
        )

    def start_preload(self) -> asyncio.Task:
        """
        Schedule the cache preload without waiting for it.

        The server keeps starting while the preload runs; its outcome is only
        logged.
        """
        if self._preload_task is not None and not self._preload_task.done():
            return self._preload_task

        self.logger.info("Scheduling cache preload", country=self.preloader.country)
        self._preload_task = asyncio.create_task(self.preloader.initialize_cache())
        self._preload_task.add_done_callback(self._on_preload_done)
        return self._preload_task

    async def stop_preload(self) -> None:
        """Cancel a preload still running at shutdown."""
        task = self._preload_task
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            self.logger.info("Cache preload cancelled at shutdown")

    def _on_preload_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if isinstance(exc, CacheInitializationError):
            self.logger.error("Startup cache preload failed", error=exc.message)
        elif exc is not None:
            self.logger.error("Startup cache preload crashed", error=str(exc), exc_info=exc)

    async def _check_dependencies(self) -> Dict[str, str]:
        ping = getattr(self.data_source, "ping", None)
        if ping is None:
            return {}
        return {"postgres": "ok" if await ping() else "error"}


def create_app():
    """Create FastAPI application."""
    service = StatsService()
    return service.app


if __name__ == "__main__":
    service = StatsService()
    service.run()
