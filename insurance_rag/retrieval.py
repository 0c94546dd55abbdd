"""Retrieval engine: filtered vector-similarity search over document chunks.

This module implements:
- normalize_insurance_types: turn a category or list of categories into a clean filter
- RetrievalEngine.search: category filter -> cosine similarity -> threshold -> ranking -> limit

Vector search uses pgvector cosine distance (similarity = 1 - distance). The category
filter is applied in SQL before ranking, so out-of-category chunks never surface even
when they are the most similar. Results are ordered by descending similarity, ties
broken by insertion order, and capped by settings.SEARCH_MAX_RESULTS.
"""
import logging
from typing import Any, Iterable, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from insurance_rag.cache import SearchCache
from insurance_rag.config import settings
from insurance_rag.db import Database
from insurance_rag.errors import FieldViolation, StorageError, ValidationError
from insurance_rag.obs import span
from insurance_rag.queries import similar_chunks
from insurance_rag.schemas import ChunkRecord, SearchHit

logger = logging.getLogger(__name__)

InsuranceTypes = Union[str, Iterable[Optional[str]], None]


def normalize_insurance_types(value: InsuranceTypes) -> List[str]:
    """Normalize a category filter.

    Accepts a single string or a sequence of strings. Entries are trimmed and
    lower-cased; empty and None entries are dropped; duplicates collapse. An empty
    result means "no filter".

    Examples:
        >>> normalize_insurance_types(["", None, " Health "])
        ['health']
        >>> normalize_insurance_types([])
        []
    """
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    out: List[str] = []
    for entry in value:
        if entry is None:
            continue
        t = str(entry).strip().lower()
        if t and t not in out:
            out.append(t)
    return out


def _as_query_vector(query_embedding: Any) -> List[float]:
    if hasattr(query_embedding, "tolist"):
        query_embedding = query_embedding.tolist()
    if isinstance(query_embedding, (str, bytes)) or not isinstance(query_embedding, (list, tuple)):
        raise ValidationError(
            "query_embedding must be a sequence of numbers",
            [FieldViolation("query_embedding", "must be a sequence of numbers")],
        )
    if len(query_embedding) != settings.EMBEDDING_DIM:
        msg = f"must be {settings.EMBEDDING_DIM}-dimensional (got {len(query_embedding)})"
        raise ValidationError(f"query_embedding {msg}", [FieldViolation("query_embedding", msg)])
    if any(isinstance(x, bool) or not isinstance(x, (int, float)) for x in query_embedding):
        raise ValidationError(
            "query_embedding must contain only numbers",
            [FieldViolation("query_embedding", "must contain only numbers")],
        )
    return [float(x) for x in query_embedding]


def _effective_limit(limit: Optional[int]) -> int:
    if limit is None:
        return settings.SEARCH_MAX_RESULTS
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise ValidationError(
            f"limit must be a positive integer (got {limit!r})",
            [FieldViolation("limit", "must be a positive integer")],
        )
    return min(limit, settings.SEARCH_MAX_RESULTS)


class RetrievalEngine:
    """Ranks stored chunks against a query vector.

    Args:
        db: Shared Database store client.
        cache: Optional SearchCache; hits are served from it when present.
    """

    def __init__(self, db: Database, cache: Optional[SearchCache] = None):
        self.db = db
        self.cache = cache

    def search(
        self,
        query_embedding: Any,
        similarity_threshold: Optional[float] = None,
        limit: Optional[int] = None,
        insurance_types: InsuranceTypes = None,
    ) -> List[SearchHit]:
        """Return chunks ranked by cosine similarity to ``query_embedding``.

        Args:
            query_embedding: Query vector with settings.EMBEDDING_DIM components.
            similarity_threshold: Optional inclusive lower bound on similarity.
            limit: Optional cap on hits, clamped to settings.SEARCH_MAX_RESULTS.
            insurance_types: Category or categories (OR-ed) the owning document must have.

        Returns:
            List[SearchHit]: Possibly empty; an empty result is not an error.

        Raises:
            ValidationError: Malformed query vector or limit.
            StorageError: The store query failed.
        """
        qvec = _as_query_vector(query_embedding)
        cap = _effective_limit(limit)
        types = normalize_insurance_types(insurance_types)

        if self.cache is not None:
            cached = self.cache.get(qvec, similarity_threshold, cap, types)
            if cached is not None:
                return cached

        with span("retrieval.search", {"limit": cap, "types": ",".join(types) or None}):
            try:
                with self.db.session_scope() as session:
                    rows = similar_chunks(session, qvec, types, similarity_threshold, cap)
                    hits = [
                        SearchHit(
                            chunk=ChunkRecord.model_validate(chunk),
                            similarity=sim,
                            insurance_type=insurance_type,
                            document_title=title,
                        )
                        for chunk, sim, insurance_type, title in rows
                    ]
            except SQLAlchemyError as exc:
                raise StorageError("Similarity search failed", exc) from exc

        # Stable ranking independent of the ANN index's internal order
        hits.sort(key=lambda h: (-h.similarity, h.chunk.id))
        hits = hits[:cap]
        logger.info(
            "Search returned %d hits (threshold=%s, limit=%d, types=%s)",
            len(hits), similarity_threshold, cap, types or "all",
        )

        if self.cache is not None:
            self.cache.set(qvec, similarity_threshold, cap, types, hits)
        return hits
