"""
Unit tests for the statistics cache preloader.
"""

import asyncio

import pytest
from unittest.mock import MagicMock

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.errors import CacheInitializationError, DataSourceError
from shared.metrics import MetricsCollector
from service_stats.app.caching import queries
from service_stats.app.caching.keys import COUNTRY_KEYS, DEPARTMENT_KEYS
from service_stats.app.caching.preloader import CachePreloader, normalize_department
from conftest import FakeDataSource


COUNTRY_AND_RANKING_KEYS = {
    "country_details_france",
    "country_crime_france",
    "country_crime_history_france",
    "country_names_france",
    "country_names_history_france",
    "ministre_france",
    "department_rankings",
    "politique_rankings",
}


def department_keys(dept):
    return {template.format(dept) for template in DEPARTMENT_KEYS.values()}


class TestCachePreloader:
    """Test cases for CachePreloader."""

    @pytest.fixture
    def preloader(self, store, data_source):
        """Preloader over the fake data source."""
        return CachePreloader(store, data_source)

    @pytest.mark.asyncio
    async def test_initialize_cache_populates_every_key(self, preloader, store):
        """Departments, country views and rankings are all cached."""
        summary = await preloader.initialize_cache()

        keys = set(store.get_stats()["keys"])
        assert keys == department_keys("01") | department_keys("2A") | COUNTRY_AND_RANKING_KEYS
        assert summary["departments"] == 2
        assert summary["planned"] == 2 * len(DEPARTMENT_KEYS) + len(COUNTRY_KEYS) + 2
        assert summary["cached"] == summary["planned"]
        assert summary["failed"] == 0

    @pytest.mark.asyncio
    async def test_views_query_with_expected_params(self, preloader, store, data_source):
        """Department views bind the code; country views bind the upper-cased name."""
        await preloader.initialize_cache()

        assert (queries.DEPARTMENT_DETAILS, ["2A", "2A"]) in data_source.calls
        assert (queries.DEPARTMENT_PREFET, ["01"]) in data_source.calls
        assert (queries.COUNTRY_MINISTRE, ["FRANCE"]) in data_source.calls
        assert store.get("prefet_01") == {"subject": "01"}
        assert store.get("dept_crime_history_2A") == [
            {"annee": 2022, "subject": "2A"},
            {"annee": 2023, "subject": "2A"},
        ]

    @pytest.mark.asyncio
    async def test_single_digit_department_is_padded_for_qpv_join(self, store):
        """Details join QPV statistics on the zero-padded code."""
        data_source = FakeDataSource(["1"])
        await CachePreloader(store, data_source).initialize_cache()

        assert (queries.DEPARTMENT_DETAILS, ["01", "1"]) in data_source.calls
        assert store.has("dept_details_1")

    def test_normalize_department(self):
        """Only single-digit numeric codes are padded."""
        assert normalize_department("1") == "01"
        assert normalize_department("01") == "01"
        assert normalize_department("2A") == "2A"
        assert normalize_department("971") == "971"

    @pytest.mark.asyncio
    async def test_zero_departments_still_preloads_country(self, store):
        """An empty department list resolves at once; country and rankings still load."""
        data_source = FakeDataSource([])

        summary = await CachePreloader(store, data_source).initialize_cache()

        keys = set(store.get_stats()["keys"])
        assert keys == COUNTRY_AND_RANKING_KEYS
        assert not any(key.startswith("dept_") for key in keys)
        assert summary["departments"] == 0
        assert store.lookup("department_rankings") == ({"data": [], "total_count": 0}, True)

    @pytest.mark.asyncio
    async def test_sub_fetch_failure_is_isolated(self, preloader, store, data_source):
        """One failing fetch only leaves its own key unset."""
        data_source.fail(queries.DEPARTMENT_CRIME_HISTORY, "01", message="disk I/O error")

        summary = await preloader.initialize_cache()

        assert not store.has("dept_crime_history_01")
        assert store.has("dept_crime_history_2A")
        assert store.has("dept_details_01")
        assert COUNTRY_AND_RANKING_KEYS <= set(store.get_stats()["keys"])
        assert summary["failed"] == 1
        assert summary["errors"] == ["dept_crime_history_01: disk I/O error"]

    @pytest.mark.asyncio
    async def test_country_and_ranking_failures_are_isolated(self, preloader, store, data_source):
        """Country and ranking fetches fail independently of each other."""
        data_source.fail(queries.COUNTRY_MINISTRE)
        data_source.fail(queries.POLITIQUE_COMMUNES)

        summary = await preloader.initialize_cache()

        assert not store.has("ministre_france")
        assert not store.has("politique_rankings")
        assert store.has("country_details_france")
        assert store.has("department_rankings")
        assert department_keys("01") <= set(store.get_stats()["keys"])
        assert summary["failed"] == 2

    @pytest.mark.asyncio
    async def test_missing_rows_are_not_cached(self, preloader, store, data_source):
        """Single-row views with no match leave the key absent."""
        data_source.missing.add((queries.DEPARTMENT_PREFET, "2A"))

        summary = await preloader.initialize_cache()

        assert not store.has("prefet_2A")
        assert store.has("prefet_01")
        assert summary["empty"] == 1
        assert summary["failed"] == 0

    @pytest.mark.asyncio
    async def test_department_list_failure_raises_after_country_stage(self, preloader, store, data_source):
        """A failing department list is reported, but country data is still loaded."""
        data_source.fail(queries.DEPARTMENT_LIST, message="no such table: departements")

        with pytest.raises(CacheInitializationError) as exc_info:
            await preloader.initialize_cache()

        assert str(exc_info.value) == "no such table: departements"
        assert set(store.get_stats()["keys"]) == COUNTRY_AND_RANKING_KEYS

    @pytest.mark.asyncio
    async def test_unreachable_source_keeps_existing_entries(self, preloader, store, data_source):
        """Refreshing against a dead source fails with its message and corrupts nothing."""
        await preloader.initialize_cache()
        size_before = store.get_stats()["size"]
        data_source.unreachable = DataSourceError("connection refused")

        with pytest.raises(CacheInitializationError) as exc_info:
            await preloader.initialize_cache()

        assert exc_info.value.message == "connection refused"
        assert store.get_stats()["size"] == size_before

    @pytest.mark.asyncio
    async def test_rerun_overwrites_entries(self, preloader, store):
        """A refresh replaces stale values under the same keys."""
        store.set("dept_details_01", {"stale": True})

        await preloader.initialize_cache()

        assert store.get("dept_details_01") == {"subject": "01"}

    @pytest.mark.asyncio
    async def test_interleaved_batch_loses_no_update(self, store):
        """Concurrent writes on disjoint keys all land, whatever the concurrency bound."""
        departments = [f"{index:02d}" for index in range(1, 41)]
        data_source = FakeDataSource(departments)

        for concurrency in (1, 50):
            store.clear()
            await CachePreloader(store, data_source, concurrency=concurrency).initialize_cache()
            assert store.get_stats()["size"] == len(departments) * len(DEPARTMENT_KEYS) + len(COUNTRY_AND_RANKING_KEYS)

    @pytest.mark.asyncio
    async def test_rankings_are_computed(self, preloader, store, data_source):
        """Ranking rows are shaped before being cached."""
        data_source.ranking_rows = [
            {"departement": "01", "insecurite_score": 3, "nat1_ensemble": 50, "nat1_etrangers": 5},
        ]
        data_source.commune_rows = [
            {"famille_nuance": "Droite", "population": 100, "insecurite_score": 5},
            {"famille_nuance": "Divers", "population": 100, "insecurite_score": 1},
        ]

        await preloader.initialize_cache()

        rankings = store.get("department_rankings")
        assert rankings["total_count"] == 1
        assert rankings["data"][0]["etrangers_pct"] == 10.0
        politique = store.get("politique_rankings")
        assert list(politique) == ["Droite"]
        assert politique["Droite"]["insecurite_score"] == 5

    @pytest.mark.asyncio
    async def test_custom_country(self, store, data_source):
        """The preloaded country is configurable and keyed in lower case."""
        await CachePreloader(store, data_source, country="Belgique").initialize_cache()

        assert store.has("country_details_belgique")
        assert store.has("ministre_belgique")
        assert (queries.COUNTRY_DETAILS, ["BELGIQUE"]) in data_source.calls

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, store, data_source):
        """Each fetch outcome is counted."""
        metrics = MetricsCollector("stats")
        data_source.fail(queries.DEPARTMENT_PREFET, "01")

        await CachePreloader(store, data_source, metrics=metrics).initialize_cache()

        registry = metrics.registry
        assert registry.get_sample_value(
            "cache_preload_total", {"category": "department_details", "result": "cached"}
        ) == 2
        assert registry.get_sample_value(
            "cache_preload_total", {"category": "department_prefet", "result": "error"}
        ) == 1
        assert registry.get_sample_value("cache_entries") == store.get_stats()["size"]

    def test_reruns_on_separate_event_loops(self, store, data_source):
        """One preloader serves successive runs, each on its own event loop."""
        preloader = CachePreloader(store, data_source, concurrency=1)

        first = asyncio.run(preloader.initialize_cache())
        second = asyncio.run(preloader.initialize_cache())

        assert first["failed"] == 0
        assert second["failed"] == 0
        assert second["cached"] == second["planned"]

    @pytest.mark.asyncio
    async def test_failure_acquiring_slot_is_isolated(self, preloader, store):
        """An error before the fetch starts still only marks that fetch as failed."""
        semaphore = MagicMock()
        semaphore.__aenter__.side_effect = RuntimeError("bound to a different event loop")

        outcomes = await preloader.preload_country_data(semaphore)

        assert len(outcomes) == 8
        assert all(item["result"] == "error" for item in outcomes)
        assert outcomes[0]["error"] == "bound to a different event loop"
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_escaping_task_error_is_counted(self, preloader, store, data_source):
        """An exception escaping a preload task is reported in the summary."""
        original = preloader._preload

        async def flaky(semaphore, category, key, fetch):
            if key == "ministre_france":
                raise RuntimeError("task crashed")
            return await original(semaphore, category, key, fetch)

        preloader._preload = flaky
        summary = await preloader.initialize_cache()

        assert summary["failed"] == 1
        assert summary["errors"] == ["ministre_france: task crashed"]
        assert store.has("country_details_france")
        assert store.has("dept_details_01")
