"""
Unit tests for the asyncpg-backed data source.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.errors import DataSourceError
from service_stats.app.adapters.postgres_client import PostgresDataSource


class TestPostgresDataSource:
    """Test cases for PostgresDataSource."""

    @pytest.fixture
    def mock_pool(self):
        """Mock asyncpg pool."""
        pool = MagicMock()
        pool.fetch = AsyncMock(return_value=[{"departement": "01"}, {"departement": "2A"}])
        pool.fetchrow = AsyncMock(return_value={"departement": "01", "population": 650000})
        pool.close = AsyncMock()
        return pool

    @pytest.fixture
    def data_source(self):
        """Data source with a dummy DSN."""
        return PostgresDataSource("postgresql://stats@localhost/stats", max_size=4)

    @pytest.mark.asyncio
    async def test_execute_query_returns_dicts(self, data_source, mock_pool):
        """Rows are returned as plain dicts with params bound positionally."""
        with patch("asyncpg.create_pool", new=AsyncMock(return_value=mock_pool)):
            rows = await data_source.execute_query("SELECT departement FROM departements WHERE x = $1", ["01"])

        assert rows == [{"departement": "01"}, {"departement": "2A"}]
        mock_pool.fetch.assert_awaited_once_with("SELECT departement FROM departements WHERE x = $1", "01")

    @pytest.mark.asyncio
    async def test_execute_query_single(self, data_source, mock_pool):
        """A single row comes back as a dict."""
        with patch("asyncpg.create_pool", new=AsyncMock(return_value=mock_pool)):
            row = await data_source.execute_query_single("SELECT 1", ["01"])

        assert row == {"departement": "01", "population": 650000}

    @pytest.mark.asyncio
    async def test_execute_query_single_no_row(self, data_source, mock_pool):
        """No matching row gives None."""
        mock_pool.fetchrow.return_value = None

        with patch("asyncpg.create_pool", new=AsyncMock(return_value=mock_pool)):
            assert await data_source.execute_query_single("SELECT 1") is None

    @pytest.mark.asyncio
    async def test_pool_created_once(self, data_source, mock_pool):
        """Concurrent first queries share one pool."""
        create_pool = AsyncMock(return_value=mock_pool)

        with patch("asyncpg.create_pool", new=create_pool):
            await asyncio.gather(*(data_source.execute_query("SELECT 1") for _ in range(5)))

        create_pool.assert_awaited_once_with(
            "postgresql://stats@localhost/stats",
            min_size=1,
            max_size=4,
            command_timeout=30.0,
        )

    @pytest.mark.asyncio
    async def test_connection_error_is_wrapped(self, data_source):
        """Connection failures surface as DataSourceError with the driver's message."""
        create_pool = AsyncMock(side_effect=ConnectionRefusedError("connection refused"))

        with patch("asyncpg.create_pool", new=create_pool):
            with pytest.raises(DataSourceError) as exc_info:
                await data_source.execute_query("SELECT 1")

        assert exc_info.value.message == "connection refused"
        assert exc_info.value.code == "DATA_SOURCE_ERROR"

    @pytest.mark.asyncio
    async def test_timeout_is_wrapped(self, data_source, mock_pool):
        """Timeouts without a message still carry a readable one."""
        mock_pool.fetchrow.side_effect = asyncio.TimeoutError()

        with patch("asyncpg.create_pool", new=AsyncMock(return_value=mock_pool)):
            with pytest.raises(DataSourceError) as exc_info:
                await data_source.execute_query_single("SELECT pg_sleep(60)")

        assert exc_info.value.message == "TimeoutError"

    @pytest.mark.asyncio
    async def test_ping(self, data_source, mock_pool):
        """ping reports whether the database answers."""
        with patch("asyncpg.create_pool", new=AsyncMock(return_value=mock_pool)):
            assert await data_source.ping() is True

            mock_pool.fetchrow.side_effect = OSError("network unreachable")
            assert await data_source.ping() is False

    @pytest.mark.asyncio
    async def test_close(self, data_source, mock_pool):
        """close releases the pool; a later query opens a new one."""
        create_pool = AsyncMock(return_value=mock_pool)

        with patch("asyncpg.create_pool", new=create_pool):
            await data_source.execute_query("SELECT 1")
            await data_source.close()
            await data_source.close()
            await data_source.execute_query("SELECT 1")

        mock_pool.close.assert_awaited_once()
        assert create_pool.await_count == 2
