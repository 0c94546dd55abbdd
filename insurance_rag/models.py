"""Database ORM models.

Defines the persistent hierarchy used by ingestion and retrieval:
- Insurer: an insurance company; name is unique.
- Document: a policy/terms/FAQ document owned by one insurer; (insurer_id, title) is unique.
- DocumentChunk: a slice of a document's text with a pgvector embedding used for
  vector similarity search. Carries a denormalized insurer_id for the query path.

Deleting an insurer cascades to its documents and, transitively, their chunks.
"""
import uuid
from datetime import datetime, timezone

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import relationship

from insurance_rag.config import settings
from insurance_rag.db import Base

# Portable column types; PostgreSQL gets its native array/jsonb types.
TagList = JSON().with_variant(ARRAY(String(100)), "postgresql")
JsonDict = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Insurer(Base):
    """Insurance company offering one or more insurance types.

    Indexes:
        - uq_insurers_name: exact-match uniqueness on name
    """
    __tablename__ = "insurers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    website = Column(String(500), nullable=True)
    insurance_types = Column(TagList, nullable=False, default=list)
    contact_email = Column(String(255), nullable=True)
    contact_phone = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    documents = relationship(
        "Document", back_populates="insurer", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (UniqueConstraint("name", name="uq_insurers_name"),)


class Document(Base):
    """Source document owned by an insurer.

    Indexes:
        - uq_documents_insurer_title: title is unique per insurer
        - idx_documents_insurance_type: speeds up categorical filtering at search time
    """
    __tablename__ = "documents"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    insurer_id = Column(Uuid, ForeignKey("insurers.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(500), nullable=False)
    insurance_type = Column(String(100), nullable=True)  # e.g. health, life, auto, home
    document_type = Column(String(100), nullable=True)   # e.g. policy, terms, faq, brochure
    source_url = Column(String(1000), nullable=True)
    file_path = Column(String(500), nullable=True)
    language = Column(String(10), nullable=False, default=lambda: settings.DEFAULT_LANGUAGE)
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JsonDict, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    insurer = relationship("Insurer", back_populates="documents")
    chunks = relationship(
        "DocumentChunk", back_populates="document", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        UniqueConstraint("insurer_id", "title", name="uq_documents_insurer_title"),
        Index("idx_documents_insurer_id", "insurer_id"),
        Index("idx_documents_insurance_type", "insurance_type"),
    )


class DocumentChunk(Base):
    """Vector-embedded document chunk used for retrieval.

    The integer id is assigned in insertion order and is used to break
    similarity ties deterministically.

    Notes:
        The embedding dimension is settings.EMBEDDING_DIM (768).
    """
    __tablename__ = "document_chunks"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    document_id = Column(Uuid, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    insurer_id = Column(Uuid, ForeignKey("insurers.id", ondelete="CASCADE"), nullable=False)

    chunk_text = Column(Text, nullable=False)
    chunk_index = Column(Integer, nullable=False)  # order within a document
    token_count = Column(Integer, nullable=True)
    embedding = Column(Vector(dim=settings.EMBEDDING_DIM), nullable=False)
    meta = Column("metadata", JsonDict, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    document = relationship("Document", back_populates="chunks")

    __table_args__ = (
        Index("idx_chunks_document_id", "document_id"),
        Index("idx_chunks_insurer_id", "insurer_id"),
        Index(
            "idx_chunks_embedding_ivfflat",
            "embedding",
            postgresql_using="ivfflat",
            postgresql_with={"lists": settings.IVFFLAT_LISTS},
            postgresql_ops={"embedding": "vector_cosine_ops"},
        ),
    )
