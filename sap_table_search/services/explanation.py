"""
Explanation generation for search results.
- Context-specific prompt templates (migration / consultant / developer / general)
- Assistant call with deterministic templated fallback
- Deprecation alert prefix whenever a returned table is DEPRECATED
"""

import datetime
import logging
from typing import Any, Optional, Sequence

from sap_table_search.services.assistant import AssistantError
from sap_table_search.services.context import QueryContext
from sap_table_search.services.ranking import MIGRATION_DEADLINE_YEAR, MergedRecord

logger = logging.getLogger("explanation")

NO_RESULTS_EXPLANATION = "No matching SAP tables found for your query."

MIGRATION_GUIDANCE = """MIGRATION EXPERT MODE - 2027 DEADLINE APPROACHING:

For each table, provide:
1. Migration Status: ECC_ONLY (must migrate), S4HANA_ONLY (new), DEPRECATED (find replacement), BOTH (review changes)
2. Business Impact: How migration affects business processes
3. Action Required: Immediate steps for 2027 compliance
4. Alternative Tables: S/4HANA replacements if deprecated

Focus on urgency and practical migration guidance."""

CONSULTANT_GUIDANCE = """CONSULTANT MODE - Business-Focused Guidance:

For each table, explain:
1. Business Purpose: Real-world usage in business processes
2. Client Value: How this solves business problems
3. Integration Points: Connections to other SAP modules
4. Migration Considerations: 2027 deadline implications if relevant

Use business language, not technical jargon."""

DEVELOPER_GUIDANCE = """DEVELOPER MODE - Technical Implementation Focus:

For each table, provide:
1. Technical Structure: Key fields and data types
2. Performance Notes: Indexing and query optimization
3. Integration APIs: Standard BAPIs and function modules
4. S/4HANA Changes: Technical differences in the new system

Balance technical depth with practical implementation guidance."""

GENERAL_GUIDANCE = """GENERAL SAP GUIDANCE:

Provide a clear, balanced explanation covering:
1. Table Purpose: What this table stores
2. Business Context: When and why it's used
3. Migration Notes: 2027 deadline awareness if relevant

Keep explanations accessible to both technical and functional users."""

GUIDANCE_BY_CONTEXT = {
    "migration": MIGRATION_GUIDANCE,
    "consultant": CONSULTANT_GUIDANCE,
    "developer": DEVELOPER_GUIDANCE,
    "general": GENERAL_GUIDANCE,
}


def build_prompt(
    query: str,
    context: QueryContext,
    records: Sequence[MergedRecord],
    today: Optional[datetime.date] = None,
) -> str:
    year = (today or datetime.date.today()).year
    tables = ", ".join(
        f"{m.record.table_name} ({m.record.module}) - {m.record.description}" for m in records
    )
    guidance = GUIDANCE_BY_CONTEXT.get(context.type, GENERAL_GUIDANCE)
    return (
        "You are an expert SAP consultant assistant helping users find the right SAP tables. "
        f"Current year: {year}.\n\n"
        f"CRITICAL CONTEXT: SAP ECC End of Life is January {MIGRATION_DEADLINE_YEAR}. "
        "All ECC customers must migrate to S/4HANA.\n\n"
        f'User Query: "{query}"\n'
        f"Found Tables: {tables}\n\n"
        f"{guidance}\n\n"
        "Only discuss the tables listed above. Answer in at most 150 words.\n\n"
        "Explanation:"
    )


def fallback_explanation(query: str, context: QueryContext, records: Sequence[MergedRecord]) -> str:
    text = f'Found {len(records)} relevant tables for "{query}".'
    if context.type == "migration":
        text += f" Review migration status ahead of the {MIGRATION_DEADLINE_YEAR} deadline."
    return text


def deprecation_prefix(records: Sequence[MergedRecord]) -> str:
    deprecated = sum(1 for m in records if m.record.migration_classification == "DEPRECATED")
    if not deprecated:
        return ""
    return f"MIGRATION ALERT: {deprecated} deprecated table(s) found. "


class ExplanationGenerator:
    """Explains a ranked result list, falling back to a template when the assistant is unavailable."""

    def __init__(self, assistant: Optional[Any] = None) -> None:
        self.assistant = assistant

    def explain(self, query: str, context: QueryContext, records: Sequence[MergedRecord]) -> str:
        if not records:
            return NO_RESULTS_EXPLANATION

        explanation = None
        if self.assistant is not None:
            try:
                explanation = self.assistant.explain(build_prompt(query, context, records)).strip()
            except AssistantError as e:
                logger.warning("Explanation unavailable (%s); using template", e)
            except Exception:
                logger.exception("Unexpected explanation error; using template")

        if not explanation:
            explanation = fallback_explanation(query, context, records)

        return deprecation_prefix(records) + explanation
