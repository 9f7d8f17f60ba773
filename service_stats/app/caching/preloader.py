"""
Startup preloader for the statistics cache.
"""

import asyncio
import time
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TYPE_CHECKING

from shared.logging import get_logger
from shared.errors import CacheInitializationError
from . import queries
from .cache_store import CacheStore
from .keys import (
    COUNTRY_KEYS,
    DEPARTMENT_KEYS,
    DEPARTMENT_RANKINGS,
    POLITIQUE_RANKINGS,
    country_key,
    department_key,
)
from .rankings import build_department_rankings, build_politique_rankings

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..adapters.postgres_client import DataSource
    from shared.metrics import MetricsCollector


DEFAULT_COUNTRY = "France"

# view -> (sql, returns a single row)
_DEPARTMENT_VIEWS = {
    "crime": (queries.DEPARTMENT_CRIME_LATEST, True),
    "crime_history": (queries.DEPARTMENT_CRIME_HISTORY, False),
    "names": (queries.DEPARTMENT_NAMES_LATEST, True),
    "names_history": (queries.DEPARTMENT_NAMES_HISTORY, False),
    "prefet": (queries.DEPARTMENT_PREFET, True),
}

_COUNTRY_VIEWS = {
    "details": (queries.COUNTRY_DETAILS, True),
    "crime": (queries.COUNTRY_CRIME_LATEST, True),
    "crime_history": (queries.COUNTRY_CRIME_HISTORY, False),
    "names": (queries.COUNTRY_NAMES_LATEST, True),
    "names_history": (queries.COUNTRY_NAMES_HISTORY, False),
    "ministre": (queries.COUNTRY_MINISTRE, True),
}


def normalize_department(dept: str) -> str:
    """Pad single-digit numeric department codes ("1" -> "01")."""
    if dept.isdigit() and len(dept) < 2:
        return dept.zfill(2)
    return dept


class CachePreloader:
    """
    Fills a CacheStore with every dataset hot-path reads need.

    Each fetch is guarded on its own: a failing query leaves its key unset and
    never stops the other fetches. Only a failure to list the departments is
    reported to the caller, once the country and ranking stages have run.
    """

    def __init__(
        self,
        store: CacheStore,
        data_source: "DataSource",
        *,
        country: str = DEFAULT_COUNTRY,
        concurrency: int = 10,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.data_source = data_source
        self.country = country
        self.metrics = metrics
        self.logger = get_logger("stats.cache_preloader")
        self.concurrency = max(1, concurrency)

    async def initialize_cache(self) -> Dict[str, Any]:
        """
        Run the full preload: departments first, then country and rankings.

        Returns a summary of planned, cached, and failed fetches. Raises
        CacheInitializationError, carrying the data source's message, when the
        department list itself could not be read.
        """
        start = time.perf_counter()
        outcomes: List[Dict[str, Any]] = []
        failure: Optional[Exception] = None

        try:
            departments = await self.list_departments()
        except Exception as exc:
            failure = exc
            departments = []
            self.logger.error("Failed to list departments for cache preload", error=str(exc))

        # A semaphore binds to the loop that first waits on it; one per run
        semaphore = self._new_semaphore()
        outcomes.extend(await self.preload_department_data(departments, semaphore))
        outcomes.extend(await self.preload_country_data(semaphore))

        summary = self._summarize(outcomes, len(departments), time.perf_counter() - start)
        self._record_size()

        if failure is not None:
            raise CacheInitializationError(str(failure), details={"summary": summary}) from failure

        self.logger.info(
            "Cache preload completed",
            departments=summary["departments"],
            cached=summary["cached"],
            failed=summary["failed"],
            duration_ms=summary["duration_ms"],
        )
        return summary

    async def list_departments(self) -> List[str]:
        """Return every department code known to the data source."""
        rows = await self.data_source.execute_query(queries.DEPARTMENT_LIST)
        return [row["departement"] for row in rows]

    async def preload_department_data(
        self,
        departments: List[str],
        semaphore: Optional[asyncio.Semaphore] = None,
    ) -> List[Dict[str, Any]]:
        """Scatter every per-department fetch, then gather them as one batch."""
        plan = [
            (f"department_{view}", department_key(view, dept), partial(self.department_view, view, dept))
            for dept in departments
            for view in DEPARTMENT_KEYS
        ]
        return await self._run_batch(plan, semaphore or self._new_semaphore())

    async def preload_country_data(
        self,
        semaphore: Optional[asyncio.Semaphore] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch the whole-country views and both ranking tables concurrently."""
        plan = [
            (f"country_{view}", country_key(view, self.country), partial(self.country_view, view, self.country))
            for view in COUNTRY_KEYS
        ]
        plan.append(("department_rankings", DEPARTMENT_RANKINGS, self.department_rankings))
        plan.append(("politique_rankings", POLITIQUE_RANKINGS, self.politique_rankings))
        return await self._run_batch(plan, semaphore or self._new_semaphore())

    async def department_view(self, view: str, dept: str) -> Any:
        """Query one per-department view; None when no row exists."""
        if view == "details":
            return await self.data_source.execute_query_single(
                queries.DEPARTMENT_DETAILS, [normalize_department(dept), dept]
            )
        sql, single = _DEPARTMENT_VIEWS[view]
        if single:
            return await self.data_source.execute_query_single(sql, [dept])
        return await self.data_source.execute_query(sql, [dept])

    async def country_view(self, view: str, country: str) -> Any:
        """Query one whole-country view; None when no row exists."""
        sql, single = _COUNTRY_VIEWS[view]
        if single:
            return await self.data_source.execute_query_single(sql, [country.upper()])
        return await self.data_source.execute_query(sql, [country.upper()])

    async def department_rankings(self) -> Dict[str, Any]:
        """Compute the department rankings payload."""
        rows = await self.data_source.execute_query(queries.DEPARTMENT_RANKINGS)
        return build_department_rankings(rows)

    async def politique_rankings(self) -> Dict[str, Dict[str, Any]]:
        """Compute the per-political-family rankings payload."""
        rows = await self.data_source.execute_query(queries.POLITIQUE_COMMUNES)
        return build_politique_rankings(rows)

    def _new_semaphore(self) -> asyncio.Semaphore:
        return asyncio.Semaphore(self.concurrency)

    async def _run_batch(
        self,
        plan: List[Tuple[str, str, Callable[[], Awaitable[Any]]]],
        semaphore: asyncio.Semaphore,
    ) -> List[Dict[str, Any]]:
        """Run every planned fetch; an escaping exception counts as that fetch's error."""
        results = await asyncio.gather(
            *(self._preload(semaphore, category, key, fetch) for category, key, fetch in plan),
            return_exceptions=True,
        )

        outcomes = []
        for (category, key, _), outcome in zip(plan, results):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                self.logger.error(
                    "Cache preload task failed",
                    category=category,
                    key=key,
                    error=str(outcome),
                )
                outcome = {"category": category, "key": key, "result": "error", "error": str(outcome)}
            outcomes.append(outcome)
        return outcomes

    async def _preload(
        self,
        semaphore: asyncio.Semaphore,
        category: str,
        key: str,
        fetch: Callable[[], Awaitable[Any]],
    ) -> Dict[str, Any]:
        """Fetch one dataset and store it under ``key``; never raises."""
        start = time.perf_counter()
        result = "empty"
        error: Optional[str] = None

        try:
            async with semaphore:
                value = await fetch()
            if value is not None:
                self.store.set(key, value)
                result = "cached"
        except Exception as exc:
            error = str(exc)
            result = "error"
            self.logger.warning(
                "Cache preload fetch failed",
                category=category,
                key=key,
                error=error,
            )
        finally:
            self._record_metrics(category, result, time.perf_counter() - start)

        if result == "empty":
            self.logger.debug("Cache preload found no data", category=category, key=key)

        return {"category": category, "key": key, "result": result, "error": error}

    def _summarize(self, outcomes: List[Dict[str, Any]], departments: int, duration: float) -> Dict[str, Any]:
        errors = [f"{item['key']}: {item['error']}" for item in outcomes if item["result"] == "error"]
        return {
            "departments": departments,
            "planned": len(outcomes),
            "cached": sum(1 for item in outcomes if item["result"] == "cached"),
            "empty": sum(1 for item in outcomes if item["result"] == "empty"),
            "failed": len(errors),
            "errors": errors,
            "duration_ms": round(duration * 1000, 2),
        }

    def _record_metrics(self, category: str, result: str, duration: float) -> None:
        """Record metrics for one preload fetch."""
        if not self.metrics:
            return

        try:
            self.metrics.increment_counter("cache_preload_total", category=category, result=result)
            self.metrics.observe_histogram("cache_preload_duration_seconds", duration, category=category)
        except Exception as exc:  # pragma: no cover - metrics failures should never break preloading
            self.logger.debug("Failed to record preload metrics", error=str(exc))

    def _record_size(self) -> None:
        if not self.metrics:
            return

        try:
            self.metrics.set_gauge("cache_entries", len(self.store))
        except Exception as exc:  # pragma: no cover
            self.logger.debug("Failed to record cache size", error=str(exc))
