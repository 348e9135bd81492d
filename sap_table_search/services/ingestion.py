"""
Catalog ingestion.
- Reads uploaded CSV/JSON bytes via pandas
- Normalizes SAP table metadata (name, module, migration classification, priority)
- Upserts rows into the SQLite sap_tables catalog keyed by table name
- Batch processing, logging, and robust error handling
"""

import io
import json
import logging
import sqlite3
import threading
from typing import Any, Dict, Tuple

import pandas as pd

from sap_table_search.services.catalog import CREATE_TABLE_SQL, MIGRATION_CLASSIFICATIONS

logger = logging.getLogger("ingestion")

# Free-form spellings seen in exported catalogs -> canonical classification
CLASSIFICATION_ALIASES = {
    "ECC": "ECC_ONLY",
    "ECC ONLY": "ECC_ONLY",
    "S4HANA": "S4HANA_ONLY",
    "S/4HANA": "S4HANA_ONLY",
    "S4HANA ONLY": "S4HANA_ONLY",
    "OBSOLETE": "DEPRECATED",
    "BOTH SYSTEMS": "BOTH",
}


class IngestionService:
    """Handles catalog ingestion, normalization, and persistence."""

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._db_lock = threading.Lock()
        self._init_db()

    # ---------------------- Public API ----------------------
    def ingest_bytes(self, content_bytes: bytes, filename: str, content_type: str) -> Dict[str, Any]:
        """
        Ingest catalog rows from raw bytes; supports CSV or JSON.
        Returns ingestion stats.
        """
        df = self._read_to_dataframe(content_bytes, filename, content_type)
        if df.empty:
            return {"inserted": 0, "updated": 0, "skipped": 0, "catalog_size": self._get_catalog_size(), "message": "No rows to ingest"}

        df_norm = self._normalize_dataframe(df)
        if df_norm.empty:
            return {
                "inserted": 0,
                "updated": 0,
                "skipped": len(df),
                "catalog_size": self._get_catalog_size(),
                "message": "All rows invalid after normalization",
            }

        inserted, updated, skipped = self._persist_tables(df_norm)
        return {
            "inserted": inserted,
            "updated": updated,
            "skipped": skipped + (len(df) - len(df_norm)),
            "catalog_size": self._get_catalog_size(),
        }

    def ingest_records(self, records: list) -> Dict[str, Any]:
        """Ingest a list of row dicts (same column conventions as uploaded files)."""
        payload = json.dumps(records).encode("utf-8")
        return self.ingest_bytes(payload, "records.json", "application/json")

    # ---------------------- Data Reading ----------------------
    def _read_to_dataframe(self, content_bytes: bytes, filename: str, content_type: str) -> pd.DataFrame:
        """Read uploaded bytes into a DataFrame, supporting CSV and JSON."""
        name_lower = (filename or "").lower()
        ct_lower = (content_type or "").lower()
        buf = io.BytesIO(content_bytes)
        try:
            if name_lower.endswith(".json") or "json" in ct_lower:
                # Try standard JSON array; fallback to JSON Lines
                data = buf.getvalue().decode("utf-8")
                try:
                    parsed = json.loads(data)
                    df = pd.DataFrame(parsed)
                except json.JSONDecodeError:
                    df = pd.read_json(io.StringIO(data), lines=True)
            else:
                if not (name_lower.endswith(".csv") or "csv" in ct_lower):
                    logger.warning("Unknown content type; attempting CSV parse")
                df = pd.read_csv(buf, encoding="utf-8", on_bad_lines="skip")
        except Exception as e:
            logger.exception("Failed to parse uploaded file")
            raise ValueError(f"Failed to parse file: {e}")

        df = df.dropna(how="all")
        logger.info("Read dataframe with %d rows and %d columns", len(df), len(df.columns))
        return df

    # ---------------------- Normalization ----------------------
    def _normalize_dataframe(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Normalize columns:
        - table_name <- 'table_name' | 'name' (upper-cased, required)
        - module <- 'module' (upper-cased)
        - ecc_vs_s4hana <- 'ecc_vs_s4hana' | 'migration_classification' | 'migration_status'
          (aliases folded, anything unrecognized -> UNKNOWN)
        - migration_priority <- int, defaults to 0
        - description, business_purpose, table_type <- stripped text
        """
        cols = {c.lower(): c for c in df.columns}

        def get_col(*names: str) -> pd.Series:
            for n in names:
                if n in cols:
                    return df[cols[n]]
            return pd.Series([None] * len(df), index=df.index)

        def clean_text(x: Any) -> str:
            return str(x).strip() if pd.notna(x) else ""

        def parse_classification(x: Any) -> str:
            s = clean_text(x).upper().replace("-", "_")
            s = CLASSIFICATION_ALIASES.get(s, s)
            return s if s in MIGRATION_CLASSIFICATIONS else "UNKNOWN"

        def parse_priority(x: Any) -> int:
            try:
                return int(float(clean_text(x) or 0))
            except (ValueError, OverflowError):
                return 0

        out = pd.DataFrame(
            {
                "table_name": get_col("table_name", "name").apply(clean_text).str.upper(),
                "description": get_col("description").apply(clean_text),
                "business_purpose": get_col("business_purpose").apply(clean_text),
                "module": get_col("module").apply(clean_text).str.upper(),
                "table_type": get_col("table_type").apply(clean_text),
                "ecc_vs_s4hana": get_col(
                    "ecc_vs_s4hana", "migration_classification", "migration_status"
                ).apply(parse_classification),
                "migration_priority": get_col("migration_priority").apply(parse_priority),
            }
        )
        out["id"] = pd.to_numeric(get_col("id"), errors="coerce")

        out = out[out["table_name"] != ""]
        out = out.drop_duplicates(subset="table_name", keep="last")
        out.reset_index(drop=True, inplace=True)
        logger.info("Normalized dataframe to %d rows", len(out))
        return out

    # ---------------------- DB Persistence ----------------------
    def _init_db(self) -> None:
        with self._db_lock, sqlite3.connect(self.db_path) as conn:
            conn.execute(CREATE_TABLE_SQL)
            conn.commit()
        logger.info("SQLite initialized at %s", self.db_path)

    def _get_catalog_size(self) -> int:
        with self._db_lock, sqlite3.connect(self.db_path) as conn:
            cur = conn.execute("SELECT COUNT(*) FROM sap_tables")
            return int((cur.fetchone() or [0])[0])

    def _persist_tables(self, df: pd.DataFrame) -> Tuple[int, int, int]:
        """
        Upsert normalized rows by table name.
        Returns (inserted_count, updated_count, skipped_count).
        """
        inserted = 0
        updated = 0
        skipped = 0
        with self._db_lock, sqlite3.connect(self.db_path) as conn:
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            for row in df.to_dict(orient="records"):
                values = (
                    row["description"],
                    row["business_purpose"] or None,
                    row["module"],
                    row["table_type"] or None,
                    row["ecc_vs_s4hana"],
                    int(row["migration_priority"]),
                )
                try:
                    cur = conn.execute(
                        """
                        UPDATE sap_tables
                        SET description = ?, business_purpose = ?, module = ?, table_type = ?,
                            ecc_vs_s4hana = ?, migration_priority = ?
                        WHERE table_name = ?
                        """,
                        values + (row["table_name"],),
                    )
                    if cur.rowcount:
                        updated += 1
                        continue
                    row_id = None if pd.isna(row["id"]) else int(row["id"])
                    conn.execute(
                        """
                        INSERT INTO sap_tables (
                            id, table_name, description, business_purpose, module, table_type,
                            ecc_vs_s4hana, migration_priority
                        )
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (row_id, row["table_name"]) + values,
                    )
                    inserted += 1
                except sqlite3.IntegrityError:
                    # Explicit id already used by another table name
                    logger.warning("Skipping %s: id %s already taken", row["table_name"], row["id"])
                    skipped += 1
                except Exception:
                    logger.exception("Failed to upsert table %s", row["table_name"])
                    skipped += 1
            conn.commit()
        logger.info("Persisted catalog: inserted=%d, updated=%d, skipped=%d", inserted, updated, skipped)
        return inserted, updated, skipped
