"""
Result merging and migration-aware scoring.
- First-wins dedup across strategies (earliest strategy fixes a record's score)
- Priority score from strategy index plus a one-time migration boost
- Presentation relevance from rank, migration urgency and messaging per classification
"""

import datetime
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence

from sap_table_search.services.catalog import CatalogRecord
from sap_table_search.services.context import QueryContext

MIGRATION_DEADLINE_YEAR = 2027

MIGRATION_BOOST = {"DEPRECATED": 25, "ECC_ONLY": 15}
MIGRATION_URGENCY = {
    "DEPRECATED": 100,
    "ECC_ONLY": 80,
    "BOTH": 60,
    "S4HANA_ONLY": 20,
    "UNKNOWN": 0,
}
DEPRECATED_RELEVANCE_BOOST = 20
DEPRECATED_URGENCY_FLAG = "URGENT: Find S/4HANA replacement"


def years_until_deadline(today: Optional[datetime.date] = None) -> int:
    today = today or datetime.date.today()
    return max(0, MIGRATION_DEADLINE_YEAR - today.year)


def migration_message(classification: str, years_remaining: int) -> str:
    if classification == "DEPRECATED":
        return (
            "Table deprecated in S/4HANA. Find replacement immediately "
            f"({years_remaining} years until ECC end-of-life)."
        )
    if classification == "ECC_ONLY":
        return f"ECC-only table. Plan S/4HANA migration strategy ({years_remaining} years remaining)."
    if classification == "BOTH":
        return "Available in both systems. Review field changes for S/4HANA compatibility."
    if classification == "S4HANA_ONLY":
        return "New S/4HANA functionality. Consider for future implementations."
    return ""


def strategy_base_score(index: int) -> int:
    if index == 0:
        return 100
    return max(0, 90 - 10 * index)


@dataclass
class MergedRecord:
    record: CatalogRecord
    priority_score: int
    relevance_score: int = 0
    migration_urgency: int = 0
    migration_message: str = ""
    urgency_flag: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        r = self.record
        return {
            "id": r.id,
            "tableName": r.table_name,
            "description": r.description,
            "module": r.module,
            "businessPurpose": r.business_purpose or r.description,
            "tableType": r.table_type,
            "migrationStatus": r.migration_classification,
            "migrationPriority": r.migration_priority,
            "priorityScore": self.priority_score,
            "relevanceScore": self.relevance_score,
            "migrationUrgency": self.migration_urgency,
            "migrationMessage": self.migration_message,
            "urgencyFlag": self.urgency_flag,
        }

    def copy(self) -> "MergedRecord":
        return replace(self)


def merge(
    strategy_results: Sequence[Any],
    limit: int,
    context: QueryContext,
    today: Optional[datetime.date] = None,
) -> List[MergedRecord]:
    """
    Fold strategy results into a ranked, deduplicated list.

    `strategy_results` must expose `.index` and `.records`; they are folded in
    ascending index order regardless of the order they are passed in.
    """
    merged: Dict[int, MergedRecord] = {}
    for result in sorted(strategy_results, key=lambda r: r.index):
        base = strategy_base_score(result.index)
        for record in result.records:
            if record.id in merged:
                continue
            boost = MIGRATION_BOOST.get(record.migration_classification, 0)
            merged[record.id] = MergedRecord(record=record, priority_score=min(100, base + boost))

    # sorted() is stable, so ties keep insertion order
    ranked = sorted(merged.values(), key=lambda m: m.priority_score, reverse=True)[: max(0, limit)]

    years_remaining = years_until_deadline(today)
    for rank, item in enumerate(ranked):
        classification = item.record.migration_classification
        item.relevance_score = max(95 - 5 * rank, 60)
        if context.type == "migration" and classification == "DEPRECATED":
            item.relevance_score = min(item.relevance_score + DEPRECATED_RELEVANCE_BOOST, 100)
            item.urgency_flag = DEPRECATED_URGENCY_FLAG
        item.migration_urgency = MIGRATION_URGENCY.get(classification, 0)
        item.migration_message = migration_message(classification, years_remaining)

    return ranked
