"""
Keyword extraction for table search.
- Primary path: ask the assistant for a JSON array of 2-5 SAP keywords
- Fallback: deterministic tokenizer that front-loads migration terms
- Never raises; always returns at least one keyword for a non-empty query
"""

import json
import logging
import re
from typing import Any, List, Optional

from sap_table_search.services.assistant import AssistantError

logger = logging.getLogger("keywords")

MIGRATION_TERMS = ("ecc", "s4hana", "migration", "deprecated", "acdoca")
MAX_KEYWORDS = 5

KEYWORD_SYSTEM_PROMPT = """You are an SAP expert extracting keywords for table search with migration awareness.

CONTEXT: SAP ECC End of Life is 2027. Prioritize migration-related terms.

Extract 2-5 keywords prioritizing:
1. Migration terms (ecc, s4hana, deprecated, acdoca)
2. Business processes (vendor, payment, invoice, material)
3. SAP modules (FI, MM, SD, HR, etc.)
4. Technical terms (document, master, transaction)

Return ONLY a JSON array of keywords.
Example: ["vendor", "payment", "migration", "FI"]"""

_JSON_ARRAY_RE = re.compile(r"\[.*?\]", re.DOTALL)


def fallback_keywords(query: str) -> List[str]:
    """Deterministic extraction: migration terms first, then tokens longer than 2 chars."""
    tokens = [t for t in query.lower().split() if len(t) > 2]

    keywords: List[str] = []
    for token in tokens:
        if token in MIGRATION_TERMS and token not in keywords:
            keywords.append(token)
    for token in tokens:
        if token not in keywords:
            keywords.append(token)

    keywords = keywords[:MAX_KEYWORDS]
    if not keywords:
        return [query.strip()]
    return keywords


def parse_keyword_array(text: str) -> List[str]:
    """Pull the first JSON array out of a completion; returns [] when nothing usable is found."""
    match = _JSON_ARRAY_RE.search(text or "")
    if not match:
        return []
    try:
        parsed = json.loads(match.group(0))
    except (json.JSONDecodeError, TypeError):
        return []
    if not isinstance(parsed, list):
        return []
    keywords = [str(k).strip() for k in parsed if isinstance(k, str) and k.strip()]
    return keywords[:MAX_KEYWORDS]


class KeywordExtractor:
    """Assistant-backed keyword extraction with a deterministic fallback."""

    def __init__(self, assistant: Optional[Any] = None) -> None:
        self.assistant = assistant

    def extract(self, query: str) -> List[str]:
        query = query.strip()
        if self.assistant is None:
            return fallback_keywords(query)

        prompt = f'{KEYWORD_SYSTEM_PROMPT}\n\nExtract SAP keywords from: "{query}"\nKeywords:'
        try:
            completion = self.assistant.extract_keywords(prompt)
        except AssistantError as e:
            logger.warning("Keyword extraction unavailable (%s); using fallback", e)
            return fallback_keywords(query)
        except Exception:
            logger.exception("Unexpected keyword extraction error; using fallback")
            return fallback_keywords(query)

        keywords = parse_keyword_array(completion)
        if not keywords:
            logger.warning("Assistant returned no parseable keywords; using fallback")
            return fallback_keywords(query)

        logger.info("Assistant keywords for '%s': %s", query, keywords)
        return keywords
