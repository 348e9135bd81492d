"""
Query context classification.
- Maps raw query text to an intent type (migration/consultant/developer/general)
- Derives an urgency tag used for the migration deadline alert
- Pure function: no I/O, safe to call on every request (cache hits included)
"""

from dataclasses import dataclass
from typing import Any, Dict, Tuple

MIGRATION_KEYWORDS: Tuple[str, ...] = (
    "migration",
    "ecc",
    "s4hana",
    "s/4hana",
    "convert",
    "upgrade",
    "2027",
    "end of life",
    "deprecated",
    "acdoca",
    "new gl",
)

CONSULTANT_KEYWORDS: Tuple[str, ...] = (
    "business",
    "process",
    "client",
    "requirement",
    "workflow",
    "implementation",
    "configuration",
    "functional",
)

DEVELOPER_KEYWORDS: Tuple[str, ...] = (
    "abap",
    "custom",
    "code",
    "development",
    "api",
    "integration",
    "enhancement",
    "badi",
    "user exit",
    "function module",
)

HIGH_URGENCY_WORDS: Tuple[str, ...] = ("urgent", "critical")
MEDIUM_URGENCY_WORDS: Tuple[str, ...] = ("planning", "prepare")


@dataclass(frozen=True)
class QueryContext:
    """Classified intent and urgency of a single query."""

    type: str
    urgency: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "urgency": self.urgency}


def classify(query: str) -> QueryContext:
    """
    Classify query text.

    Dictionaries are checked in priority order (migration, consultant, developer);
    the first one with a substring hit decides the type.
    """
    text = (query or "").lower()

    if any(k in text for k in MIGRATION_KEYWORDS):
        context_type = "migration"
    elif any(k in text for k in CONSULTANT_KEYWORDS):
        context_type = "consultant"
    elif any(k in text for k in DEVELOPER_KEYWORDS):
        context_type = "developer"
    else:
        context_type = "general"

    if context_type == "migration" or any(w in text for w in HIGH_URGENCY_WORDS):
        urgency = "high"
    elif any(w in text for w in MEDIUM_URGENCY_WORDS):
        urgency = "medium"
    else:
        urgency = "low"

    return QueryContext(type=context_type, urgency=urgency)
