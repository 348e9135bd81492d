"""
Search service: migration-aware SAP table search.
- Context classification on every request (cache hits included)
- Result cache lookup keyed by normalized query
- On miss: keyword extraction, parallel strategy fan-out, first-wins merge and scoring
- AI explanation (or cached-result template), deadline alert, fire-and-forget search log
"""

import datetime
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from sap_table_search.services.cache import ResultCache
from sap_table_search.services.context import QueryContext, classify
from sap_table_search.services.explanation import ExplanationGenerator
from sap_table_search.services.keywords import KeywordExtractor
from sap_table_search.services.ranking import MergedRecord, merge, years_until_deadline
from sap_table_search.services.strategies import StrategyExecutor, build_strategies

logger = logging.getLogger("search")

DEFAULT_LIMIT = 10
MAX_LIMIT = 100


class SearchValidationError(ValueError):
    """Raised for requests that cannot be searched (empty query)."""


def migration_alert(context: QueryContext, today: Optional[datetime.date] = None) -> Optional[str]:
    if context.type != "migration" and context.urgency != "high":
        return None
    years = years_until_deadline(today)
    return f"SAP ECC End of Life: {years} years remaining until mandatory S/4HANA migration."


def cached_explanation(query: str, count: int) -> str:
    return f'Found {count} relevant SAP tables for "{query}" (cached results).'


class SearchService:
    """
    Orchestrates one search request end to end.
    Collaborators are injected so the cache and store can be shared across requests.
    """

    def __init__(
        self,
        store: Any,
        cache: ResultCache,
        assistant: Optional[Any] = None,
        log_sink: Optional[Any] = None,
        store_timeout_seconds: float = 3.0,
        today: Callable[[], datetime.date] = datetime.date.today,
    ) -> None:
        """
        Initialize SearchService.

        Args:
            store: Read-only catalog store exposing query(filter, order_by, limit)
            cache: Process-wide result cache
            assistant: Optional AI assistant client (keyword extraction and explanations)
            log_sink: Optional search log sink exposing log_search(...)
            store_timeout_seconds: Bound for one round of parallel store queries
            today: Date provider used for deadline arithmetic
        """
        self.cache = cache
        self.log_sink = log_sink
        self.keyword_extractor = KeywordExtractor(assistant)
        self.executor = StrategyExecutor(store, timeout_seconds=store_timeout_seconds)
        self.explainer = ExplanationGenerator(assistant)
        self._today = today

    # ---------------------- Ranking ----------------------
    def _rank(self, query: str, context: QueryContext, limit: int) -> List[MergedRecord]:
        keywords = self.keyword_extractor.extract(query)
        logger.info("Keywords for '%s': %s", query, keywords)
        strategies = build_strategies(keywords)
        results = self.executor.run(strategies)
        return merge(results, limit, context, today=self._today())

    # ---------------------- Public Search API ----------------------
    def search(self, query: Optional[str], user_id: Optional[str] = None, limit: int = DEFAULT_LIMIT) -> Dict[str, Any]:
        """
        Execute search and assemble the response payload.

        Returns {
            'success': True,
            'results': [MergedRecord.to_dict(), ...] trimmed to limit,
            'aiExplanation': str,
            'processingTimeMs': float,
            'context': context type,
            'migrationAlert': str (only for migration or high-urgency queries)
        }
        """
        start_time = time.perf_counter()
        if not query or not query.strip():
            raise SearchValidationError("Search query is required")

        query = query.strip()
        limit = max(1, min(int(limit or DEFAULT_LIMIT), MAX_LIMIT))
        context = classify(query)
        logger.info("Search context for '%s': %s", query, context.to_dict())

        cached = self.cache.get(query)
        if cached is not None:
            records = cached[:limit]
            explanation = cached_explanation(query, len(records))
            logger.info("Cache hit for '%s': %d results", query, len(records))
        else:
            records = self._rank(query, context, limit)
            self.cache.put(query, records)
            explanation = self.explainer.explain(query, context, records)

        processing_time_ms = round((time.perf_counter() - start_time) * 1000, 2)
        response: Dict[str, Any] = {
            "success": True,
            "results": [m.to_dict() for m in records],
            "aiExplanation": explanation,
            "processingTimeMs": processing_time_ms,
            "context": context.type,
        }
        alert = migration_alert(context, self._today())
        if alert:
            response["migrationAlert"] = alert

        self._log_search(query, len(records), processing_time_ms, context, user_id)
        return response

    def _log_search(
        self,
        query: str,
        results_count: int,
        response_time_ms: float,
        context: QueryContext,
        user_id: Optional[str],
    ) -> None:
        if self.log_sink is None:
            return
        try:
            self.log_sink.log_search(
                query=query,
                results_count=results_count,
                response_time_ms=response_time_ms,
                search_context=context.type,
                user_id=user_id,
            )
        except Exception:
            logger.exception("Search logging failed")
