"""
Administrative endpoints for the in-process statistics cache.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from shared.logging import get_logger
from ..caching.cache_store import CacheStore
from ..caching.preloader import CachePreloader


def create_cache_admin_router(store: CacheStore, preloader: CachePreloader) -> APIRouter:
    """Build the /api/cache router (stats, clear, refresh)."""
    router = APIRouter(prefix="/api/cache", tags=["cache"])
    logger = get_logger("stats.cache_admin")

    @router.get("/stats")
    async def get_cache_stats():
        """Report entry count and keys."""
        return store.get_stats()

    @router.post("/clear")
    async def clear_cache():
        """Drop every cached entry."""
        size = len(store)
        store.clear()
        logger.info("Cache cleared", removed=size)
        return {"message": "Cache cleared successfully"}

    @router.post("/refresh")
    async def refresh_cache():
        """Re-run the preload and wait for it to finish."""
        try:
            summary = await preloader.initialize_cache()
        except Exception as exc:
            logger.error("Cache refresh failed", error=str(exc))
            return JSONResponse(
                status_code=500,
                content={"error": "Failed to refresh cache", "details": str(exc)},
            )

        return {"message": "Cache refreshed successfully", "summary": summary}

    return router
