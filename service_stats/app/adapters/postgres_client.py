"""
Async PostgreSQL data source used by the statistics service.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Protocol, Sequence

import asyncpg

from shared.logging import get_logger
from shared.errors import DataSourceError


class DataSource(Protocol):
    """Query-executing collaborator consumed by the cache and the routes."""

    async def execute_query(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        ...

    async def execute_query_single(self, sql: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        ...


class PostgresDataSource:
    """Lightweight asyncpg pool wrapper returning rows as plain dicts."""

    def __init__(
        self,
        dsn: str,
        *,
        min_size: int = 1,
        max_size: int = 10,
        command_timeout: float = 30.0,
    ) -> None:
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.logger = get_logger("stats.postgres")
        self._pool: Optional[asyncpg.Pool] = None
        self._pool_lock = asyncio.Lock()

    async def _get_pool(self) -> asyncpg.Pool:
        """Create the connection pool on first use."""
        if self._pool is None:
            async with self._pool_lock:
                if self._pool is None:
                    self._pool = await asyncpg.create_pool(
                        self.dsn,
                        min_size=self.min_size,
                        max_size=self.max_size,
                        command_timeout=self.command_timeout,
                    )
                    self.logger.info("PostgreSQL pool created", max_size=self.max_size)
        return self._pool

    async def close(self) -> None:
        """Close the underlying pool."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            self.logger.info("PostgreSQL pool closed")

    async def execute_query(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        """Run ``sql`` with positional ``params`` and return every row."""
        try:
            pool = await self._get_pool()
            records = await pool.fetch(sql, *params)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as exc:
            self.logger.error("PostgreSQL query failed", error=str(exc))
            raise DataSourceError(str(exc) or exc.__class__.__name__) from exc
        return [dict(record) for record in records]

    async def execute_query_single(self, sql: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        """Run ``sql`` and return the first row, or None when nothing matches."""
        try:
            pool = await self._get_pool()
            record = await pool.fetchrow(sql, *params)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as exc:
            self.logger.error("PostgreSQL query failed", error=str(exc))
            raise DataSourceError(str(exc) or exc.__class__.__name__) from exc
        return dict(record) if record is not None else None

    async def ping(self) -> bool:
        """Return True when PostgreSQL answers a trivial query."""
        try:
            await self.execute_query_single("SELECT 1")
            return True
        except DataSourceError:
            return False
