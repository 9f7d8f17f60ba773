"""
Shared fixtures for statistics service tests.
"""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.errors import DataSourceError
from service_stats.app.caching import queries
from service_stats.app.caching.cache_store import CacheStore


class FakeDataSource:
    """In-memory data source answering the preloader's SQL."""

    def __init__(self, departments: Optional[List[str]] = None):
        self.departments = list(departments or [])
        self.calls: List[tuple] = []
        self.failures: Dict[tuple, Exception] = {}
        self.missing: set = set()
        self.unreachable: Optional[Exception] = None
        self.ranking_rows: List[Dict[str, Any]] = []
        self.commune_rows: List[Dict[str, Any]] = []

    def fail(self, sql: str, param: Optional[str] = None, message: str = "query failed"):
        """Make ``sql`` fail, for one bind value or for every call."""
        self.failures[(sql, param)] = DataSourceError(message)

    def _check(self, sql: str, params) -> Optional[str]:
        params = list(params)
        self.calls.append((sql, params))
        if self.unreachable is not None:
            raise self.unreachable
        subject = params[-1] if params else None
        for key in ((sql, subject), (sql, None)):
            if key in self.failures:
                raise self.failures[key]
        return subject

    async def execute_query(self, sql, params=()):
        await asyncio.sleep(0)
        subject = self._check(sql, params)
        if sql == queries.DEPARTMENT_LIST:
            return [{"departement": dept} for dept in self.departments]
        if sql == queries.DEPARTMENT_RANKINGS:
            return list(self.ranking_rows)
        if sql == queries.POLITIQUE_COMMUNES:
            return list(self.commune_rows)
        return [{"annee": 2022, "subject": subject}, {"annee": 2023, "subject": subject}]

    async def execute_query_single(self, sql, params=()):
        await asyncio.sleep(0)
        subject = self._check(sql, params)
        if (sql, subject) in self.missing:
            return None
        return {"subject": subject}


@pytest.fixture
def store():
    """Empty cache store."""
    return CacheStore()


@pytest.fixture
def data_source():
    """Fake data source with two departments."""
    return FakeDataSource(["01", "2A"])
