"""
FastAPI application entrypoint for migration-aware SAP table search.
- POST /search: context classification, cached or fan-out ranking, AI explanation
- OPTIONS /search: permissive CORS preflight for POST
- POST /ingest: load catalog rows (CSV or JSON) into the SQLite metadata store
- GET /health: simple liveness check
"""

from typing import Optional

from fastapi import FastAPI, UploadFile, File, HTTPException, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
import logging
import os
import time

from sap_table_search.services.assistant import AssistantClient
from sap_table_search.services.cache import ResultCache
from sap_table_search.services.catalog import CatalogStore
from sap_table_search.services.ingestion import IngestionService
from sap_table_search.services.search import SearchService, SearchValidationError
from sap_table_search.services.tracking import SearchLogService

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("app")


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Paths and tuning (configurable via environment variables)
BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DB_PATH = os.getenv("DB_PATH") or os.path.join(BASE_DIR, "db", "sap_tables.db")
USE_LLM = _env_flag("USE_LLM")
LLM_MODEL = os.getenv("LLM_MODEL") or AssistantClient.DEFAULT_MODEL
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "5"))
STORE_TIMEOUT_SECONDS = float(os.getenv("STORE_TIMEOUT_SECONDS", "3"))
CACHE_TTL_SECONDS = float(os.getenv("CACHE_TTL_SECONDS", "300"))
CACHE_CAPACITY = int(os.getenv("CACHE_CAPACITY", "100"))

# Ensure folders exist
os.makedirs(os.path.dirname(DB_PATH), exist_ok=True)

app = FastAPI(title="SAP Table Search")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Process-wide collaborators (the result cache is the only shared mutable state)
catalog_store = CatalogStore(db_path=DB_PATH, timeout_seconds=STORE_TIMEOUT_SECONDS)
result_cache = ResultCache(ttl_seconds=CACHE_TTL_SECONDS, capacity=CACHE_CAPACITY)
assistant = AssistantClient(enabled=USE_LLM, model_name=LLM_MODEL, timeout_seconds=LLM_TIMEOUT_SECONDS)
search_log_service = SearchLogService(db_path=DB_PATH)
ingestion_service = IngestionService(db_path=DB_PATH)
search_service = SearchService(
    store=catalog_store,
    cache=result_cache,
    assistant=assistant if USE_LLM else None,
    log_sink=search_log_service,
    store_timeout_seconds=STORE_TIMEOUT_SECONDS,
)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


class SearchRequest(BaseModel):
    """Search request payload."""
    query: Optional[str] = Field(None, description="Free-text search query")
    userId: Optional[str] = Field(None, description="Optional caller id for search logging")
    limit: int = Field(10, description="Maximum number of results (clamped to 1..100)")


def _error_envelope(error: str, status_code: int, start_time: float) -> JSONResponse:
    return JSONResponse(
        {
            "success": False,
            "error": error,
            "results": [],
            "aiExplanation": "",
            "processingTimeMs": round((time.perf_counter() - start_time) * 1000, 2),
            "context": "error",
        },
        status_code=status_code,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Keep /search failures inside the search error envelope."""
    if request.url.path != "/search":
        return await request_validation_exception_handler(request, exc)

    start_time = time.perf_counter()
    if any("query" in error.get("loc", ()) for error in exc.errors()):
        logger.warning("POST /search rejected: invalid query")
        return _error_envelope("Search query is required", 400, start_time)
    logger.error("POST /search malformed request: %s", exc.errors())
    return _error_envelope("Internal server error", 500, start_time)


@app.get("/health")
def health():
    """Basic health check."""
    return {"status": "ok"}


@app.options("/search")
def search_options():
    """CORS preflight for the search endpoint."""
    return Response(status_code=200, headers=CORS_HEADERS)


@app.post("/search")
def search(request: Optional[SearchRequest] = None):
    """
    Search SAP tables with migration awareness.
    - Classifies query context (migration / consultant / developer / general) and urgency
    - Serves cached results for repeated queries within the cache TTL
    - Otherwise extracts keywords, runs search strategies in parallel, merges first-wins
    - Adds AI explanation and, for migration or urgent queries, the 2027 deadline alert

    Example:
    POST /search
    {
        "query": "SAP ECC migration tables 2027",
        "userId": "user-123",
        "limit": 10
    }
    """
    start_time = time.perf_counter()
    request = request or SearchRequest()
    try:
        logger.info("POST /search start: query='%s', user=%s, limit=%d", request.query, request.userId, request.limit)
        result = search_service.search(
            query=request.query,
            user_id=request.userId,
            limit=request.limit,
        )
        logger.info(
            "POST /search success: results=%d, context=%s, latency=%.2fms",
            len(result["results"]),
            result["context"],
            result["processingTimeMs"],
        )
        return JSONResponse(result)
    except SearchValidationError as ve:
        logger.warning("POST /search rejected: %s", ve)
        return _error_envelope("Search query is required", 400, start_time)
    except Exception:
        elapsed = time.perf_counter() - start_time
        logger.exception("POST /search error: latency=%.2fms", elapsed * 1000)
        return _error_envelope("Internal server error", 500, start_time)


@app.post("/ingest")
async def ingest(file: UploadFile = File(...)):
    """
    Ingest SAP table metadata uploaded as multipart file (CSV or JSON).
    - Parses with pandas
    - Normalizes table name, module, migration classification and priority
    - Upserts rows into the SQLite catalog
    - Clears the result cache so rankings reflect the new catalog
    Returns ingestion stats with latency metrics.
    """
    start_time = time.perf_counter()
    try:
        filename = file.filename or "uploaded"
        content_type = file.content_type or "application/octet-stream"
        content = await file.read()
        if not content:
            raise HTTPException(status_code=400, detail="Empty file upload")

        logger.info("POST /ingest start: filename=%s, size=%d bytes", filename, len(content))
        result = ingestion_service.ingest_bytes(
            content_bytes=content,
            filename=filename,
            content_type=content_type,
        )
        result_cache.clear()
        elapsed = time.perf_counter() - start_time
        result["latency_ms"] = round(elapsed * 1000, 2)
        logger.info(
            "POST /ingest success: inserted=%d, updated=%d, skipped=%d, latency=%.2fms",
            result.get("inserted", 0),
            result.get("updated", 0),
            result.get("skipped", 0),
            result["latency_ms"],
        )
        return JSONResponse(result)
    except HTTPException as he:
        elapsed = time.perf_counter() - start_time
        logger.warning("POST /ingest failed with status %d: latency=%.2fms", he.status_code, elapsed * 1000)
        raise he
    except ValueError as ve:
        elapsed = time.perf_counter() - start_time
        logger.warning("POST /ingest rejected: %s, latency=%.2fms", ve, elapsed * 1000)
        raise HTTPException(status_code=400, detail=str(ve))
    except Exception as e:
        elapsed = time.perf_counter() - start_time
        logger.exception("POST /ingest error: latency=%.2fms", elapsed * 1000)
        raise HTTPException(status_code=500, detail=f"Ingestion error: {str(e)}")
