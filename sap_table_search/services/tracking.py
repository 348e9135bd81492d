"""
Search log sink.
- Fire-and-forget insertion of search events into the SQLite search_logs table
- Background daemon thread per event; callers never wait on or see failures
- Thread-safe database access
"""

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger("tracking")


class SearchLogService:
    """Handles search event logging with async threaded insertion."""

    def __init__(self, db_path: str) -> None:
        """
        Initialize SearchLogService.

        Args:
            db_path: Path to the SQLite database (shared with the catalog)
        """
        self.db_path = db_path
        self._db_lock = threading.Lock()
        self._init_db()

    # ---------------------- Database Setup ----------------------
    def _init_db(self) -> None:
        """Create search_logs table if not exists."""
        with self._db_lock, sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS search_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT,
                    search_query TEXT NOT NULL,
                    results_count INTEGER NOT NULL,
                    response_time_ms REAL NOT NULL,
                    search_context TEXT NOT NULL,
                    conversion_opportunity INTEGER NOT NULL DEFAULT 0,
                    search_timestamp TEXT NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_search_logs_query ON search_logs(search_query)"
            )
            conn.commit()
        logger.info("Search log table initialized")

    # ---------------------- Event Logging ----------------------
    def log_search(
        self,
        query: str,
        results_count: int,
        response_time_ms: float,
        search_context: str,
        user_id: Optional[str] = None,
        async_insert: bool = True,
    ) -> None:
        """
        Record one search event.

        Args:
            query: Search query as received
            results_count: Number of results returned to the client
            response_time_ms: Processing time of the request
            search_context: Classified context type
            user_id: Optional caller id
            async_insert: If True, insert via background thread (non-blocking)
        """
        event = {
            "user_id": user_id,
            "search_query": query,
            "results_count": int(results_count),
            "response_time_ms": float(response_time_ms),
            "search_context": search_context,
            "conversion_opportunity": 1 if search_context == "migration" else 0,
            "search_timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if async_insert:
            thread = threading.Thread(target=self._insert_event, args=(event,), daemon=True)
            thread.start()
        else:
            self._insert_event(event)

    def _insert_event(self, event: Dict[str, Any]) -> Optional[int]:
        """Insert one event. Returns the row id, or None on failure."""
        try:
            with self._db_lock, sqlite3.connect(self.db_path) as conn:
                cur = conn.execute(
                    """
                    INSERT INTO search_logs (
                        user_id, search_query, results_count, response_time_ms,
                        search_context, conversion_opportunity, search_timestamp
                    )
                    VALUES (:user_id, :search_query, :results_count, :response_time_ms,
                            :search_context, :conversion_opportunity, :search_timestamp)
                    """,
                    event,
                )
                event_id = cur.lastrowid
                conn.commit()
            logger.info(
                "Search logged: query='%s', results=%d, context=%s, event_id=%d",
                event["search_query"],
                event["results_count"],
                event["search_context"],
                event_id,
            )
            return event_id
        except Exception:
            logger.exception("Failed to log search event")
            return None

    # ---------------------- Event Querying ----------------------
    def recent_searches(self, limit: int = 20) -> List[Dict[str, Any]]:
        """Most recent search events, newest first."""
        with self._db_lock, sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            cur = conn.execute(
                "SELECT * FROM search_logs ORDER BY id DESC LIMIT ?",
                (limit,),
            )
            rows = [dict(row) for row in cur.fetchall()]
        for row in rows:
            row["conversion_opportunity"] = bool(row["conversion_opportunity"])
        return rows
