"""
Search strategies and parallel fan-out.
- Strategies are plain data (filter + ordering + cap), built in fixed priority order
- One generic executor dispatches every applicable strategy concurrently
- Wait-all join; a failed or slow strategy contributes an empty result list
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from sap_table_search.services.catalog import CatalogFilter, CatalogRecord
from sap_table_search.services.keywords import MIGRATION_TERMS

logger = logging.getLogger("strategies")

SAP_MODULES = ("FI", "MM", "SD", "HR", "PP", "QM", "PM")

MIGRATION_STRATEGY_CAP = 8
NAME_STRATEGY_CAP = 5
BROAD_STRATEGY_CAP = 8
MODULE_STRATEGY_CAP = 5


@dataclass(frozen=True)
class StrategySpec:
    name: str
    filter: CatalogFilter
    order_by: Optional[str]
    limit: int


@dataclass
class StrategyResult:
    index: int
    strategy: StrategySpec
    records: List[CatalogRecord]
    error: Optional[str] = None


def build_strategies(keywords: Sequence[str]) -> List[StrategySpec]:
    """
    Build the ordered list of applicable strategies for a keyword set.

    Order: migration-priority, one name match per keyword longer than 3 chars,
    broad text match on the first keyword, module filter.
    """
    keywords = [k for k in keywords if k and k.strip()]
    strategies: List[StrategySpec] = []
    if not keywords:
        return strategies

    migration_keywords = [k for k in keywords if k.lower() in MIGRATION_TERMS]
    if migration_keywords:
        strategies.append(
            StrategySpec(
                name="migration_priority",
                filter=CatalogFilter(
                    contains=tuple(("migration_classification", k) for k in migration_keywords)
                ),
                order_by="migration_priority",
                limit=MIGRATION_STRATEGY_CAP,
            )
        )

    for keyword in keywords:
        if len(keyword) > 3:
            strategies.append(
                StrategySpec(
                    name=f"name_match:{keyword}",
                    filter=CatalogFilter(contains=(("name", keyword),)),
                    order_by=None,
                    limit=NAME_STRATEGY_CAP,
                )
            )

    main_keyword = keywords[0]
    strategies.append(
        StrategySpec(
            name="broad_text",
            filter=CatalogFilter(
                contains=(
                    ("description", main_keyword),
                    ("business_purpose", main_keyword),
                    ("name", main_keyword),
                )
            ),
            order_by=None,
            limit=BROAD_STRATEGY_CAP,
        )
    )

    module_keywords = [k.upper() for k in keywords if k.upper() in SAP_MODULES]
    if module_keywords:
        strategies.append(
            StrategySpec(
                name="module",
                filter=CatalogFilter(modules=tuple(dict.fromkeys(module_keywords))),
                order_by="migration_priority",
                limit=MODULE_STRATEGY_CAP,
            )
        )

    return strategies


class StrategyExecutor:
    """Runs strategies concurrently against a read-only catalog store."""

    def __init__(self, store: Any, timeout_seconds: float = 3.0) -> None:
        self.store = store
        self.timeout_seconds = timeout_seconds

    def _run_one(self, spec: StrategySpec) -> List[CatalogRecord]:
        return self.store.query(spec.filter, order_by=spec.order_by, limit=spec.limit)

    def run(self, strategies: Sequence[StrategySpec]) -> List[StrategyResult]:
        if not strategies:
            return []

        start_time = time.perf_counter()
        # One worker per strategy, per request: the timeout only ever covers the store call
        pool = ThreadPoolExecutor(max_workers=len(strategies), thread_name_prefix="strategy")
        try:
            futures = [pool.submit(self._run_one, spec) for spec in strategies]
            done, _ = wait(futures, timeout=self.timeout_seconds)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        results: List[StrategyResult] = []
        for index, (spec, future) in enumerate(zip(strategies, futures)):
            if future not in done:
                future.cancel()
                logger.warning("Strategy %d (%s) timed out after %.1fs", index, spec.name, self.timeout_seconds)
                results.append(StrategyResult(index, spec, [], error="timeout"))
                continue
            try:
                records = future.result()
            except Exception as e:
                logger.exception("Strategy %d (%s) failed", index, spec.name)
                results.append(StrategyResult(index, spec, [], error=str(e)))
                continue
            results.append(StrategyResult(index, spec, list(records)))

        elapsed = time.perf_counter() - start_time
        logger.info(
            "Ran %d strategies: %d records, %d degraded, latency=%.2fms",
            len(strategies),
            sum(len(r.records) for r in results),
            sum(1 for r in results if r.error is not None),
            elapsed * 1000,
        )
        return results
