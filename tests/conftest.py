"""Test fixtures for SAP table search."""

import os
import tempfile
from collections.abc import Generator
from pathlib import Path
from typing import Any, Dict, List

# The application module builds its collaborators at import time; point it at a
# throwaway database before it is imported anywhere.
os.environ.setdefault("DB_PATH", os.path.join(tempfile.mkdtemp(prefix="sap-search-"), "sap_tables.db"))
os.environ.setdefault("USE_LLM", "false")

import pytest
from fastapi.testclient import TestClient

from sap_table_search.services.assistant import AssistantError
from sap_table_search.services.cache import ResultCache
from sap_table_search.services.catalog import CatalogStore
from sap_table_search.services.ingestion import IngestionService
from sap_table_search.services.search import SearchService

SAMPLE_TABLES: List[Dict[str, Any]] = [
    {"id": 1, "table_name": "BKPF", "description": "Accounting Document Header", "business_purpose": "Header data for every financial posting", "module": "FI", "ecc_vs_s4hana": "BOTH", "migration_priority": 90},
    {"id": 2, "table_name": "BSEG", "description": "Accounting Document Segment", "business_purpose": "Line items of financial postings", "module": "FI", "ecc_vs_s4hana": "BOTH", "migration_priority": 85},
    {"id": 3, "table_name": "GLT0", "description": "G/L account master record transaction figures", "business_purpose": "Classic general ledger totals, replaced by ACDOCA", "module": "FI", "ecc_vs_s4hana": "DEPRECATED", "migration_priority": 100},
    {"id": 4, "table_name": "ACDOCA", "description": "Universal Journal Entry Line Items", "business_purpose": "Single source of truth for financial and controlling postings", "module": "FI", "ecc_vs_s4hana": "S4HANA_ONLY", "migration_priority": 95},
    {"id": 5, "table_name": "LFA1", "description": "Vendor Master (General Section)", "business_purpose": "Vendor master data used in procurement and payment", "module": "MM", "ecc_vs_s4hana": "BOTH", "migration_priority": 70},
    {"id": 6, "table_name": "BSIK", "description": "Secondary index for vendors (open items)", "business_purpose": "Open vendor items awaiting payment", "module": "FI", "ecc_vs_s4hana": "DEPRECATED", "migration_priority": 80},
    {"id": 7, "table_name": "REGUH", "description": "Settlement data from payment program", "business_purpose": "Vendor payment run results", "module": "FI", "ecc_vs_s4hana": "BOTH", "migration_priority": 40},
    {"id": 8, "table_name": "KONV", "description": "Conditions (transaction data)", "business_purpose": "Pricing conditions in ECC sales documents", "module": "SD", "ecc_vs_s4hana": "ECC_ONLY", "migration_priority": 88},
    {"id": 9, "table_name": "PRCD_ELEMENTS", "description": "Pricing elements", "business_purpose": "S/4HANA replacement for KONV", "module": "SD", "ecc_vs_s4hana": "S4HANA_ONLY", "migration_priority": 60},
    {"id": 10, "table_name": "MARA", "description": "General Material Data", "business_purpose": "Central product master", "module": "MM", "ecc_vs_s4hana": "BOTH", "migration_priority": 75},
    {"id": 11, "table_name": "VBAK", "description": "Sales Document: Header Data", "business_purpose": "Sales order headers", "module": "SD", "ecc_vs_s4hana": "BOTH", "migration_priority": 65},
]


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class UnreachableAssistant:
    """Assistant whose every call fails as if the model were unreachable."""

    def __init__(self) -> None:
        self.calls = 0

    def extract_keywords(self, prompt: str) -> str:
        self.calls += 1
        raise AssistantError("connection refused")

    def explain(self, prompt: str) -> str:
        self.calls += 1
        raise AssistantError("connection refused")


class ScriptedAssistant:
    """Assistant returning canned completions and recording prompts."""

    def __init__(self, keywords: str = '["vendor", "payment"]', explanation: str = "Tables explained.") -> None:
        self.keywords = keywords
        self.explanation = explanation
        self.prompts: List[str] = []

    def extract_keywords(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.keywords

    def explain(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.explanation


class CountingStore:
    """Wraps a catalog store and counts query calls."""

    def __init__(self, inner: CatalogStore) -> None:
        self.inner = inner
        self.calls = 0

    def query(self, predicate, order_by=None, limit=10):
        self.calls += 1
        return self.inner.query(predicate, order_by=order_by, limit=limit)


class RecordingSink:
    """Search log sink that keeps events in memory."""

    def __init__(self, fail: bool = False) -> None:
        self.events: List[Dict[str, Any]] = []
        self.fail = fail

    def log_search(self, **event: Any) -> None:
        if self.fail:
            raise RuntimeError("log sink down")
        self.events.append(event)


@pytest.fixture
def temp_db_path() -> Generator[Path, None, None]:
    """Create a temporary SQLite database path."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "catalog.db"


@pytest.fixture
def ingestion_service(temp_db_path: Path) -> IngestionService:
    return IngestionService(db_path=str(temp_db_path))


@pytest.fixture
def catalog_store(temp_db_path: Path, ingestion_service: IngestionService) -> CatalogStore:
    """Catalog store seeded with the sample SAP tables."""
    ingestion_service.ingest_records(SAMPLE_TABLES)
    return CatalogStore(db_path=str(temp_db_path))


@pytest.fixture
def counting_store(catalog_store: CatalogStore) -> CountingStore:
    return CountingStore(catalog_store)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def result_cache(clock: FakeClock) -> ResultCache:
    return ResultCache(ttl_seconds=300, capacity=100, clock=clock)


@pytest.fixture
def log_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def search_service(
    counting_store: CountingStore,
    result_cache: ResultCache,
    log_sink: RecordingSink,
) -> SearchService:
    """Search service with no assistant (deterministic keyword/explanation paths)."""
    return SearchService(store=counting_store, cache=result_cache, log_sink=log_sink)


@pytest.fixture
def test_client(monkeypatch: pytest.MonkeyPatch, search_service: SearchService) -> TestClient:
    """Create a test client wired to the seeded search service."""
    from sap_table_search import main

    monkeypatch.setattr(main, "search_service", search_service)
    return TestClient(main.app)

