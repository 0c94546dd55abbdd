"""Ingestion and retrieval over an insurer / document / chunk vector store.

Submodules overview:
- config: Application settings and environment variable loading.
- db: Store client (engine, sessions, schema bootstrap).
- models: ORM models and relationships.
- schemas: Pydantic request/record models.
- errors: Error taxonomy with tagged error values.
- validation: Pure record validation.
- queries: Existence checks, helper lookups and the pgvector similarity query.
- ingestion: Single-record and batch-tolerant bulk inserts.
- retrieval: Filtered, ranked similarity search.
- catalog: Read-only lookups for callers.
- cache: Optional Redis cache of search results.
- obs: OpenTelemetry spans.
- main: FastAPI application.
"""
