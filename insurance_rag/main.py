"""FastAPI application entrypoint and routes.

Exposes ingestion, catalog and search endpoints over the engines. The Database is
created and the schema initialized at startup, and the connection pool is disposed at
shutdown. Engine errors are returned as tagged error values:

    {"error": {"kind": "duplicate", "message": "...", "details": {...}}}

with the HTTP status chosen by kind.
"""
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import Body, Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from insurance_rag.cache import SearchCache
from insurance_rag.catalog import Catalog
from insurance_rag.config import settings
from insurance_rag.db import Database
from insurance_rag.errors import InsuranceRagError
from insurance_rag.ingestion import IngestionEngine
from insurance_rag.logging_config import configure_logging
from insurance_rag.retrieval import RetrievalEngine, normalize_insurance_types
from insurance_rag.schemas import (
    BulkInsertRequest,
    BulkInsertSummary,
    ChunkRecord,
    DocumentRecord,
    InsurerRecord,
    SearchRequest,
    SearchResponse,
    StoreStats,
)

configure_logging(settings.LOG_LEVEL)

STATUS_BY_KIND = {
    "validation": 422,
    "duplicate": 409,
    "reference": 404,
    "storage": 503,
}

app = FastAPI(title="Insurance RAG API", version="0.1.0")


@app.on_event("startup")
def on_startup() -> None:
    """Connect to the store and ensure schema and indexes exist."""
    db = Database.from_settings()
    db.init_db()
    app.state.database = db
    app.state.search_cache = SearchCache.from_settings()


@app.on_event("shutdown")
def on_shutdown() -> None:
    db = getattr(app.state, "database", None)
    if db is not None:
        db.close()


@app.exception_handler(InsuranceRagError)
def handle_engine_error(request: Request, exc: InsuranceRagError) -> JSONResponse:
    return JSONResponse(status_code=STATUS_BY_KIND.get(exc.kind, 500), content={"error": exc.to_dict()})


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_ingestion_engine(db: Database = Depends(get_database)) -> IngestionEngine:
    return IngestionEngine(db)


def get_retrieval_engine(request: Request, db: Database = Depends(get_database)) -> RetrievalEngine:
    return RetrievalEngine(db, cache=getattr(request.app.state, "search_cache", None))


def get_catalog(db: Database = Depends(get_database)) -> Catalog:
    return Catalog(db)


@app.get("/health")
def health(db: Database = Depends(get_database)):
    """Liveness probe including a database round-trip."""
    return {"status": "ok", "database": "ok" if db.ping() else "unreachable"}


@app.post("/insurers", response_model=InsurerRecord, status_code=201)
def create_insurer(data: Dict[str, Any] = Body(...), engine: IngestionEngine = Depends(get_ingestion_engine)):
    return engine.insert_insurer(data)


@app.get("/insurers", response_model=List[InsurerRecord])
def list_insurers(
    insurance_type: Optional[str] = None,
    search: Optional[str] = None,
    catalog: Catalog = Depends(get_catalog),
):
    return catalog.list_insurers(insurance_type=insurance_type, search=search)


@app.get("/insurers/{insurer_id}/documents", response_model=List[DocumentRecord])
def list_documents(insurer_id: UUID, catalog: Catalog = Depends(get_catalog)):
    return catalog.get_documents_by_insurer(insurer_id)


@app.post("/documents", response_model=DocumentRecord, status_code=201)
def create_document(data: Dict[str, Any] = Body(...), engine: IngestionEngine = Depends(get_ingestion_engine)):
    return engine.insert_document(data)


@app.get("/documents/{document_id}/chunks/count")
def count_chunks(document_id: UUID, catalog: Catalog = Depends(get_catalog)):
    return {"document_id": str(document_id), "count": catalog.get_chunk_count(document_id)}


@app.post("/chunks", response_model=ChunkRecord, status_code=201)
def create_chunk(data: Dict[str, Any] = Body(...), engine: IngestionEngine = Depends(get_ingestion_engine)):
    return engine.insert_document_chunk(data)


@app.post("/chunks/bulk", response_model=BulkInsertSummary)
def bulk_create_chunks(req: BulkInsertRequest, engine: IngestionEngine = Depends(get_ingestion_engine)):
    return engine.bulk_insert_chunks(req.chunks, batch_size=req.batch_size)


@app.post("/search", response_model=SearchResponse)
def search(req: SearchRequest, engine: RetrievalEngine = Depends(get_retrieval_engine)) -> SearchResponse:
    """Similarity search with an already-computed query embedding."""
    hits = engine.search(
        req.query_embedding,
        similarity_threshold=req.similarity_threshold,
        limit=req.limit,
        insurance_types=req.insurance_types,
    )
    types = normalize_insurance_types(req.insurance_types)
    return SearchResponse(results=hits, count=len(hits), filtered_by_type=bool(types), insurance_types_filter=types)


@app.get("/stats", response_model=StoreStats)
def stats(catalog: Catalog = Depends(get_catalog)):
    return catalog.get_stats()
