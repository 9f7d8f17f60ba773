"""
HTTP routes of the statistics service.
"""

from .cache_admin import create_cache_admin_router
from .statistics import create_statistics_router

__all__ = ["create_cache_admin_router", "create_statistics_router"]
