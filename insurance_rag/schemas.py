"""Pydantic request/response schemas.

Defines the typed contracts used by the engines and the HTTP layer:
- InsurerCreate / DocumentCreate / ChunkCreate: candidate records for ingestion.
  Field rules here are the single source of record validation (see validation.py).
- InsurerRecord / DocumentRecord / ChunkRecord: stored records read back from the ORM.
- SearchHit: a ranked chunk with its similarity score.
- BatchError / BulkInsertSummary: bulk insertion accounting.
- SearchRequest / SearchResponse / BulkInsertRequest / StoreStats: HTTP payloads.
"""
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic_core import PydanticCustomError

from insurance_rag.config import settings

EmbeddingComponent = Annotated[float, Field(strict=True, allow_inf_nan=False)]


def _not_blank(value: str, field: str) -> str:
    if not value.strip():
        raise PydanticCustomError("blank_string", "{field} must not be empty", {"field": field})
    return value


def _coerce_vector(value: Any) -> Any:
    # numpy arrays and similar
    if hasattr(value, "tolist"):
        return value.tolist()
    return value


def _check_dimension(value: List[float]) -> List[float]:
    if len(value) != settings.EMBEDDING_DIM:
        raise PydanticCustomError(
            "embedding_dimension",
            "embedding must be {dim}-dimensional (got {got})",
            {"dim": settings.EMBEDDING_DIM, "got": len(value)},
        )
    return value


class InsurerCreate(BaseModel):
    """Candidate insurer record.

    Attributes:
        name: Unique insurer name (exact, case-sensitive match).
        insurance_types: Ordered category tags offered by the insurer.
    """
    name: str
    description: Optional[str] = None
    website: Optional[str] = None
    insurance_types: List[str] = Field(default_factory=list)
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        return _not_blank(v, "name")


class DocumentCreate(BaseModel):
    """Candidate document record; language falls back to settings.DEFAULT_LANGUAGE."""
    insurer_id: UUID
    title: str
    insurance_type: Optional[str] = None
    document_type: Optional[str] = None
    source_url: Optional[str] = None
    file_path: Optional[str] = None
    language: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, v: str) -> str:
        return _not_blank(v, "title")

    @field_validator("insurance_type")
    @classmethod
    def _normalize_insurance_type(cls, v: Optional[str]) -> Optional[str]:
        # stored in the same form search filters are normalized to
        if v is None:
            return None
        return v.strip().lower() or None


class ChunkCreate(BaseModel):
    """Candidate chunk record with its embedding vector."""
    document_id: UUID
    insurer_id: UUID
    chunk_text: str
    chunk_index: int = Field(strict=True, ge=0)
    embedding: List[EmbeddingComponent]
    token_count: Optional[int] = Field(default=None, strict=True, gt=0)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("chunk_text")
    @classmethod
    def _text_not_blank(cls, v: str) -> str:
        return _not_blank(v, "chunk_text")

    @field_validator("embedding", mode="before")
    @classmethod
    def _embedding_as_list(cls, v: Any) -> Any:
        return _coerce_vector(v)

    @field_validator("embedding")
    @classmethod
    def _embedding_dimension(cls, v: List[float]) -> List[float]:
        return _check_dimension(v)


class InsurerRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: Optional[str] = None
    website: Optional[str] = None
    insurance_types: List[str] = Field(default_factory=list)
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    created_at: Optional[datetime] = None


class DocumentRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    insurer_id: UUID
    title: str
    insurance_type: Optional[str] = None
    document_type: Optional[str] = None
    source_url: Optional[str] = None
    file_path: Optional[str] = None
    language: str
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("meta", "metadata"))
    created_at: Optional[datetime] = None


class ChunkRecord(BaseModel):
    """Stored chunk; the embedding vector is not echoed back."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    document_id: UUID
    insurer_id: UUID
    chunk_text: str
    chunk_index: int
    token_count: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("meta", "metadata"))
    created_at: Optional[datetime] = None


class SearchHit(BaseModel):
    """A retrieved chunk with its cosine similarity to the query (1 - cosine distance)."""
    chunk: ChunkRecord
    similarity: float
    insurance_type: Optional[str] = None
    document_title: Optional[str] = None


class BatchError(BaseModel):
    """One failure entry in a bulk insert.

    Attributes:
        kind: 'validation' for a malformed chunk, 'reference' for a chunk whose document is
            unknown or not owned by its insurer, 'storage' for a failed batch write.
        batch: Zero-based batch number.
        batch_range: Input positions covered, as "first-last".
        reason: Human-readable cause.
    """
    kind: Literal["validation", "reference", "storage"]
    batch: int
    batch_range: str
    reason: str


class BulkInsertSummary(BaseModel):
    total: int = 0
    inserted: int = 0
    failed: int = 0
    errors: List[BatchError] = Field(default_factory=list)


class BulkInsertRequest(BaseModel):
    chunks: List[Dict[str, Any]]
    batch_size: Optional[int] = None


class SearchRequest(BaseModel):
    """Request body for similarity search.

    Attributes:
        query_embedding: Query vector (settings.EMBEDDING_DIM components).
        similarity_threshold: Optional inclusive lower bound on similarity.
        limit: Optional cap on the number of hits.
        insurance_types: One category or a list of categories (OR-ed).
    """
    query_embedding: List[float]
    similarity_threshold: Optional[float] = Field(default=None, ge=-1.0, le=1.0)
    limit: Optional[int] = None
    insurance_types: Union[str, List[Optional[str]], None] = None


class SearchResponse(BaseModel):
    results: List[SearchHit]
    count: int
    filtered_by_type: bool
    insurance_types_filter: List[str] = Field(default_factory=list)


class StoreStats(BaseModel):
    insurers: int
    documents: int
    chunks: int
