"""
Read-only access to the SAP table catalog.
- SQLite `sap_tables` table (shared with the ingestion service)
- Filter predicates: OR-ed case-insensitive substring terms plus an optional module set
- Whitelisted ordering columns, hard row cap per query
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger("catalog")

MIGRATION_CLASSIFICATIONS = ("ECC_ONLY", "S4HANA_ONLY", "DEPRECATED", "BOTH", "UNKNOWN")

# Logical field -> SQLite column
SEARCHABLE_COLUMNS: Dict[str, str] = {
    "name": "table_name",
    "description": "description",
    "business_purpose": "business_purpose",
    "module": "module",
    "migration_classification": "ecc_vs_s4hana",
}
ORDERABLE_COLUMNS: Dict[str, str] = {
    "migration_priority": "migration_priority",
    "name": "table_name",
}

CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS sap_tables (
        id INTEGER PRIMARY KEY,
        table_name TEXT NOT NULL UNIQUE,
        description TEXT,
        business_purpose TEXT,
        module TEXT,
        table_type TEXT,
        ecc_vs_s4hana TEXT NOT NULL DEFAULT 'UNKNOWN',
        migration_priority INTEGER NOT NULL DEFAULT 0
    )
"""


@dataclass(frozen=True)
class CatalogRecord:
    id: int
    table_name: str
    description: str
    business_purpose: Optional[str]
    module: str
    migration_classification: str
    migration_priority: int
    table_type: Optional[str] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "CatalogRecord":
        classification = (row["ecc_vs_s4hana"] or "UNKNOWN").upper()
        if classification not in MIGRATION_CLASSIFICATIONS:
            classification = "UNKNOWN"
        return cls(
            id=int(row["id"]),
            table_name=row["table_name"],
            description=row["description"] or "",
            business_purpose=row["business_purpose"],
            module=(row["module"] or "").upper(),
            migration_classification=classification,
            migration_priority=int(row["migration_priority"] or 0),
            table_type=row["table_type"],
        )


@dataclass(frozen=True)
class CatalogFilter:
    """
    Predicate over catalog columns.

    `contains` holds (field, term) pairs that are OR-ed together; `modules`, when set,
    restricts rows to that module set and is AND-ed with the substring terms.
    """

    contains: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
    modules: Tuple[str, ...] = field(default_factory=tuple)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_query(
    predicate: CatalogFilter, order_by: Optional[str], limit: int
) -> Tuple[str, List[Any]]:
    """Translate a CatalogFilter into parameterized SQL."""
    clauses: List[str] = []
    params: List[Any] = []

    if predicate.contains:
        ors = []
        for field_name, term in predicate.contains:
            column = SEARCHABLE_COLUMNS.get(field_name)
            if column is None:
                raise ValueError(f"Unsupported filter field: {field_name}")
            ors.append(f"LOWER(COALESCE({column}, '')) LIKE ? ESCAPE '\\'")
            params.append(f"%{_escape_like(term.lower())}%")
        clauses.append("(" + " OR ".join(ors) + ")")

    if predicate.modules:
        placeholders = ",".join("?" * len(predicate.modules))
        clauses.append(f"UPPER(module) IN ({placeholders})")
        params.extend(m.upper() for m in predicate.modules)

    sql = (
        "SELECT id, table_name, description, business_purpose, module, table_type, "
        "ecc_vs_s4hana, migration_priority FROM sap_tables"
    )
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)

    if order_by is not None:
        column = ORDERABLE_COLUMNS.get(order_by)
        if column is None:
            raise ValueError(f"Unsupported order column: {order_by}")
        sql += f" ORDER BY {column} DESC, id ASC"
    else:
        sql += " ORDER BY id ASC"

    sql += " LIMIT ?"
    params.append(int(limit))
    return sql, params


class CatalogStore:
    """Read-only query interface over the SQLite catalog."""

    def __init__(self, db_path: str, timeout_seconds: float = 3.0) -> None:
        """
        Initialize CatalogStore.

        Args:
            db_path: Path to the SQLite catalog database
            timeout_seconds: SQLite busy timeout for each query connection
        """
        self.db_path = db_path
        self.timeout_seconds = timeout_seconds
        self._init_db()

    def _init_db(self) -> None:
        with sqlite3.connect(self.db_path, timeout=self.timeout_seconds) as conn:
            conn.execute(CREATE_TABLE_SQL)
            conn.commit()
        logger.info("Catalog table ready at %s", self.db_path)

    def query(
        self,
        predicate: CatalogFilter,
        order_by: Optional[str] = None,
        limit: int = 10,
    ) -> List[CatalogRecord]:
        """Run one bounded SELECT. Errors propagate to the caller."""
        sql, params = build_query(predicate, order_by, limit)
        with sqlite3.connect(self.db_path, timeout=self.timeout_seconds) as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(sql, params).fetchall()
        return [CatalogRecord.from_row(row) for row in rows]

    def count(self) -> int:
        with sqlite3.connect(self.db_path, timeout=self.timeout_seconds) as conn:
            cur = conn.execute("SELECT COUNT(*) FROM sap_tables")
            return int((cur.fetchone() or [0])[0])
