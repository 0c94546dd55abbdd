"""Read-only queries against the persisted state.

All functions take an open SQLAlchemy Session; callers own the transaction.

Existence checks consulted before writes:
- insurer_exists / insurer_by_id / document_title_exists / document_by_id
- document_owners: batch ownership lookup for bulk chunk inserts

Helper lookups:
- insurer_by_name / all_insurers / documents_by_insurer / chunk_count / table_counts

Vector search:
- similar_chunks: pgvector cosine similarity (similarity = 1 - cosine distance) with an
  optional insurance-type filter on the owning document.
"""
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from insurance_rag.models import Document, DocumentChunk, Insurer


def insurer_by_name(db: Session, name: str) -> Optional[Insurer]:
    """Exact, case-sensitive lookup by insurer name."""
    return db.execute(select(Insurer).where(Insurer.name == name)).scalar_one_or_none()


def insurer_exists(db: Session, name: str) -> Optional[UUID]:
    """Return the id of the insurer named exactly ``name``, or None."""
    return db.execute(select(Insurer.id).where(Insurer.name == name)).scalar_one_or_none()


def insurer_by_id(db: Session, insurer_id: UUID) -> Optional[Insurer]:
    return db.get(Insurer, insurer_id)


def document_title_exists(db: Session, insurer_id: UUID, title: str) -> Optional[UUID]:
    """Return the id of the document with this (insurer, title) pair, or None."""
    stmt = select(Document.id).where(Document.insurer_id == insurer_id, Document.title == title)
    return db.execute(stmt).scalar_one_or_none()


def document_by_id(db: Session, document_id: UUID) -> Optional[Document]:
    return db.get(Document, document_id)


def document_owners(db: Session, document_ids: Iterable[UUID]) -> Dict[UUID, UUID]:
    """Map each existing document id to its owning insurer id; unknown ids are absent."""
    ids = list(document_ids)
    if not ids:
        return {}
    stmt = select(Document.id, Document.insurer_id).where(Document.id.in_(ids))
    return {doc_id: insurer_id for doc_id, insurer_id in db.execute(stmt).all()}


def all_insurers(db: Session) -> Sequence[Insurer]:
    return db.execute(select(Insurer).order_by(Insurer.name)).scalars().all()


def search_insurers(db: Session, name_contains: str) -> Sequence[Insurer]:
    """Insurers whose name contains ``name_contains`` (case-insensitive, LIKE wildcards matched literally)."""
    stmt = select(Insurer).where(Insurer.name.icontains(name_contains, autoescape=True)).order_by(Insurer.name)
    return db.execute(stmt).scalars().all()


def documents_by_insurer(db: Session, insurer_id: UUID) -> Sequence[Document]:
    """Documents owned by an insurer, newest first."""
    stmt = (
        select(Document)
        .where(Document.insurer_id == insurer_id)
        .order_by(Document.created_at.desc(), Document.title)
    )
    return db.execute(stmt).scalars().all()


def chunk_count(db: Session, document_id: UUID) -> int:
    stmt = select(func.count(DocumentChunk.id)).where(DocumentChunk.document_id == document_id)
    return int(db.execute(stmt).scalar_one())


def table_counts(db: Session) -> Dict[str, int]:
    return {
        "insurers": int(db.execute(select(func.count(Insurer.id))).scalar_one()),
        "documents": int(db.execute(select(func.count(Document.id))).scalar_one()),
        "chunks": int(db.execute(select(func.count(DocumentChunk.id))).scalar_one()),
    }


def similar_chunks(
    db: Session,
    query_embedding: List[float],
    insurance_types: Sequence[str],
    min_similarity: Optional[float],
    limit: int,
) -> List[Tuple[DocumentChunk, float, Optional[str], str]]:
    """Nearest chunks by cosine similarity, filtered before ranking.

    Args:
        db: SQLAlchemy session.
        query_embedding: Query vector.
        insurance_types: Normalized categories; empty means no type filter.
        min_similarity: Optional inclusive similarity floor.
        limit: Maximum number of rows.

    Returns:
        List of (chunk, similarity, document insurance_type, document title), ordered by
        descending similarity with ties broken by chunk id (insertion order).
    """
    distance = DocumentChunk.embedding.cosine_distance(query_embedding)
    similarity = (1 - distance).label("similarity")
    stmt = (
        select(DocumentChunk, similarity, Document.insurance_type, Document.title)
        .join(Document, DocumentChunk.document_id == Document.id)
    )
    if insurance_types:
        stmt = stmt.where(Document.insurance_type.in_(list(insurance_types)))
    if min_similarity is not None:
        stmt = stmt.where(distance <= 1 - min_similarity)
    stmt = stmt.order_by(distance, DocumentChunk.id).limit(limit)
    return [(row[0], float(row[1]), row[2], row[3]) for row in db.execute(stmt).all()]
