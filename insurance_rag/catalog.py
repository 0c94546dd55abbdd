"""Read-only catalog lookups exposed to callers.

Thin wrappers over queries.py that open a session per call, convert ORM rows into
read models, and surface store failures as StorageError.
"""
import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from insurance_rag import queries
from insurance_rag.db import Database
from insurance_rag.errors import StorageError
from insurance_rag.retrieval import normalize_insurance_types
from insurance_rag.schemas import DocumentRecord, InsurerRecord, StoreStats

logger = logging.getLogger(__name__)


class Catalog:
    def __init__(self, db: Database):
        self.db = db

    @contextmanager
    def _read(self, what: str) -> Iterator[Session]:
        try:
            with self.db.session_scope() as session:
                yield session
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read {what}", exc) from exc

    def get_insurer_by_name(self, name: str) -> Optional[InsurerRecord]:
        """Exact-match lookup; None when no insurer has this name."""
        with self._read("insurer") as session:
            row = queries.insurer_by_name(session, name)
            return InsurerRecord.model_validate(row) if row is not None else None

    def get_all_insurers(self) -> List[InsurerRecord]:
        with self._read("insurers") as session:
            return [InsurerRecord.model_validate(r) for r in queries.all_insurers(session)]

    def list_insurers(self, insurance_type: Optional[str] = None, search: Optional[str] = None) -> List[InsurerRecord]:
        """Insurers filtered by an offered insurance type and/or a name substring.

        Type tags are compared after trimming and lower-casing both sides.
        """
        with self._read("insurers") as session:
            rows = queries.search_insurers(session, search) if search else queries.all_insurers(session)
            insurers = [InsurerRecord.model_validate(r) for r in rows]
        wanted = normalize_insurance_types(insurance_type)
        if wanted:
            insurers = [i for i in insurers if set(normalize_insurance_types(i.insurance_types)) & set(wanted)]
        return insurers

    def get_documents_by_insurer(self, insurer_id: UUID) -> List[DocumentRecord]:
        """Documents owned by the insurer, newest first; empty for unknown insurers."""
        with self._read("documents") as session:
            return [DocumentRecord.model_validate(d) for d in queries.documents_by_insurer(session, insurer_id)]

    def get_chunk_count(self, document_id: UUID) -> int:
        with self._read("chunk count") as session:
            return queries.chunk_count(session, document_id)

    def get_stats(self) -> StoreStats:
        with self._read("store statistics") as session:
            return StoreStats(**queries.table_counts(session))
