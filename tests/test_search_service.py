"""Tests for the end-to-end search service."""

import datetime
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import CountingStore, FakeClock, RecordingSink, ScriptedAssistant, UnreachableAssistant
from sap_table_search.services.cache import ResultCache
from sap_table_search.services.context import QueryContext
from sap_table_search.services.search import (
    SearchService,
    SearchValidationError,
    migration_alert,
)


class FailingStore:
    def query(self, predicate, order_by=None, limit=10):
        raise RuntimeError("database is locked")


class SlowStore:
    """Delegates to a real store after a fixed delay."""

    def __init__(self, inner, delay: float) -> None:
        self.inner = inner
        self.delay = delay

    def query(self, predicate, order_by=None, limit=10):
        time.sleep(self.delay)
        return self.inner.query(predicate, order_by=order_by, limit=limit)


class TestValidation:
    @pytest.mark.parametrize("query", ["", "   ", "\n\t", None])
    def test_empty_query_rejected(self, search_service: SearchService, query) -> None:
        with pytest.raises(SearchValidationError):
            search_service.search(query)


class TestMigrationQuery:
    def test_scenario_migration_alert(self, search_service: SearchService) -> None:
        response = search_service.search("SAP ECC migration tables 2027")

        years = max(0, 2027 - datetime.date.today().year)
        assert response["success"] is True
        assert response["context"] == "migration"
        assert response["migrationAlert"]
        assert f"{years} years remaining" in response["migrationAlert"]
        assert [r["tableName"] for r in response["results"]] == ["KONV"]
        assert response["aiExplanation"].endswith("ahead of the 2027 deadline.")

    def test_deprecated_tables_flagged(self, search_service: SearchService) -> None:
        response = search_service.search("deprecated vendor")

        names = [r["tableName"] for r in response["results"]]
        assert names[:2] == ["GLT0", "BSIK"]
        for item in response["results"][:2]:
            assert item["migrationUrgency"] == 100
            assert item["relevanceScore"] == 100
            assert item["urgencyFlag"]
        assert response["aiExplanation"].startswith("MIGRATION ALERT: 2 deprecated table(s) found.")

    def test_general_query_has_no_alert(self, search_service: SearchService) -> None:
        response = search_service.search("vendor payment tables")
        assert response["context"] == "general"
        assert "migrationAlert" not in response

    def test_urgent_general_query_has_alert(self, search_service: SearchService) -> None:
        response = search_service.search("urgent vendor tables")
        assert response["context"] == "general"
        assert "migrationAlert" in response


class TestRanking:
    def test_vendor_payment_ranking(self, search_service: SearchService) -> None:
        response = search_service.search("vendor payment tables")

        results = response["results"]
        assert [r["tableName"] for r in results] == ["BSIK", "LFA1", "REGUH"]
        assert [r["priorityScore"] for r in results] == [85, 60, 60]
        assert [r["relevanceScore"] for r in results] == [95, 90, 85]

    def test_limit_trims_results(self, search_service: SearchService) -> None:
        response = search_service.search("vendor payment tables", limit=2)
        assert len(response["results"]) == 2

    def test_assistant_keywords_drive_strategies(self, counting_store: CountingStore) -> None:
        assistant = ScriptedAssistant(keywords='["BKPF"]', explanation="BKPF stores document headers.")
        service = SearchService(store=counting_store, cache=ResultCache(), assistant=assistant)

        response = service.search("where are accounting document headers stored")
        assert response["results"][0]["tableName"] == "BKPF"
        assert response["results"][0]["priorityScore"] == 100
        assert response["aiExplanation"] == "BKPF stores document headers."

    def test_unreachable_assistant_still_answers(self, counting_store: CountingStore) -> None:
        service = SearchService(store=counting_store, cache=ResultCache(), assistant=UnreachableAssistant())
        response = service.search("vendor payment tables")
        assert response["success"] is True
        assert len(response["results"]) == 3

    def test_store_outage_returns_empty_results(self) -> None:
        service = SearchService(store=FailingStore(), cache=ResultCache())
        response = service.search("vendor payment tables")

        assert response["success"] is True
        assert response["results"] == []
        assert response["aiExplanation"] == "No matching SAP tables found for your query."


class TestCaching:
    def test_second_call_served_from_cache(self, search_service: SearchService, counting_store: CountingStore) -> None:
        first = search_service.search("vendor payment tables")
        calls_after_first = counting_store.calls
        second = search_service.search("  Vendor Payment Tables ")

        assert counting_store.calls == calls_after_first
        assert second["results"] == first["results"]
        assert "(cached results)" in second["aiExplanation"]
        assert "(cached results)" not in first["aiExplanation"]

    def test_context_recomputed_on_cache_hit(self, search_service: SearchService) -> None:
        search_service.search("vendor tables")
        cached = search_service.search("VENDOR TABLES")
        assert cached["context"] == "general"
        assert "migrationAlert" not in cached

    def test_expired_entry_recomputed(
        self, search_service: SearchService, counting_store: CountingStore, clock: FakeClock
    ) -> None:
        search_service.search("vendor payment tables")
        calls_after_first = counting_store.calls

        clock.advance(301)
        response = search_service.search("vendor payment tables")

        assert counting_store.calls > calls_after_first
        assert "(cached results)" not in response["aiExplanation"]

    def test_cached_results_are_not_shared(self, search_service: SearchService) -> None:
        search_service.search("vendor payment tables")
        hit = search_service.cache.get("vendor payment tables")
        hit[0].relevance_score = 0
        again = search_service.search("vendor payment tables")
        assert again["results"][0]["relevanceScore"] == 95


class TestSearchLogging:
    def test_logs_search_event(self, search_service: SearchService, log_sink: RecordingSink) -> None:
        search_service.search("SAP ECC migration", user_id="user-1")

        assert len(log_sink.events) == 1
        event = log_sink.events[0]
        assert event["query"] == "SAP ECC migration"
        assert event["user_id"] == "user-1"
        assert event["search_context"] == "migration"
        assert event["results_count"] == 1
        assert event["response_time_ms"] >= 0

    def test_logging_failure_does_not_change_response(self, counting_store: CountingStore) -> None:
        service = SearchService(store=counting_store, cache=ResultCache(), log_sink=RecordingSink(fail=True))
        response = service.search("vendor payment tables")
        assert response["success"] is True
        assert len(response["results"]) == 3


class TestMigrationAlert:
    def test_absent_for_low_general(self) -> None:
        assert migration_alert(QueryContext("general", "low")) is None

    def test_absent_for_medium_consultant(self) -> None:
        assert migration_alert(QueryContext("consultant", "medium")) is None

    def test_years_floored_at_zero(self) -> None:
        alert = migration_alert(QueryContext("migration", "high"), datetime.date(2030, 1, 1))
        assert alert == "SAP ECC End of Life: 0 years remaining until mandatory S/4HANA migration."

    def test_counts_years_remaining(self) -> None:
        alert = migration_alert(QueryContext("general", "high"), datetime.date(2025, 3, 1))
        assert "2 years remaining" in alert


class TestInjectedDate:
    def test_messages_use_injected_today(self, counting_store: CountingStore) -> None:
        service = SearchService(
            store=counting_store,
            cache=ResultCache(clock=FakeClock()),
            today=lambda: datetime.date(2025, 5, 1),
        )
        response = service.search("SAP ECC migration")
        assert "(2 years remaining)" in response["results"][0]["migrationMessage"]
        assert "2 years remaining" in response["migrationAlert"]


class TestConcurrentSearches:
    def test_slow_store_under_concurrent_load(self, catalog_store) -> None:
        service = SearchService(
            store=SlowStore(catalog_store, 0.2),
            cache=ResultCache(ttl_seconds=300, capacity=100, clock=FakeClock()),
            store_timeout_seconds=1.0,
        )
        queries = [f"ecc vendor payment material FI {n}" for n in range(10)]

        with ThreadPoolExecutor(max_workers=10) as pool:
            responses = list(pool.map(service.search, queries))

        for response in responses:
            assert response["success"] is True
            assert response["results"]
