"""
SAP Table Search - migration-aware search over SAP table metadata.

Modular services:
- SearchService: Context classification, cache, strategy fan-out, ranking, explanation
- CatalogStore: Read-only SQLite catalog queries
- IngestionService: Parse, normalize, and upsert catalog rows
- SearchLogService: Fire-and-forget search logging
- AssistantClient: Optional local LLM for keywords and explanations
"""

__version__ = "1.0.0"
__author__ = "Search Platform Team"
