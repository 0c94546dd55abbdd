"""
Test suite for RetrievalEngine.

The pgvector similarity query is replaced by an in-memory stand-in that honors the
same contract (type filter, similarity floor, limit), so these tests exercise the
engine's normalization, ranking and error handling without PostgreSQL.
"""

import uuid
from types import SimpleNamespace
from typing import List, Optional
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from insurance_rag.config import settings
from insurance_rag.errors import StorageError, ValidationError
from insurance_rag.retrieval import RetrievalEngine, normalize_insurance_types
from tests.conftest import make_embedding


def _row(chunk_id: int, similarity: float, insurance_type: Optional[str] = "health", title: str = "Policy"):
    chunk = SimpleNamespace(
        id=chunk_id,
        document_id=uuid.uuid4(),
        insurer_id=uuid.uuid4(),
        chunk_text=f"chunk {chunk_id}",
        chunk_index=chunk_id,
        token_count=None,
        meta={},
        created_at=None,
    )
    return chunk, similarity, insurance_type, title


class FakeSimilarChunks:
    """Stand-in for queries.similar_chunks over a fixed row set."""

    def __init__(self, rows):
        self.rows = rows
        self.calls: List[dict] = []

    def __call__(self, session, query_embedding, insurance_types, min_similarity, limit):
        self.calls.append({"types": list(insurance_types), "min_similarity": min_similarity, "limit": limit})
        out = [r for r in self.rows if not insurance_types or r[2] in insurance_types]
        if min_similarity is not None:
            out = [r for r in out if r[1] >= min_similarity]
        out.sort(key=lambda r: (-r[1], r[0].id))
        return out[:limit]


@pytest.fixture
def rows():
    return [
        _row(5, 0.71, "auto"),
        _row(2, 0.93, "health"),
        _row(9, 0.80, "life"),
        _row(4, 0.80, "health"),
        _row(1, 0.55, None),
    ]


@pytest.fixture
def fake(rows):
    stand_in = FakeSimilarChunks(rows)
    with patch("insurance_rag.retrieval.similar_chunks", stand_in):
        yield stand_in


@pytest.fixture
def engine(db) -> RetrievalEngine:
    return RetrievalEngine(db)


class TestNormalizeInsuranceTypes:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, []),
            ([], []),
            ("", []),
            ("health", ["health"]),
            ("  Health ", ["health"]),
            (["", None, "health"], ["health"]),
            (["Life", "life ", "AUTO"], ["life", "auto"]),
            (("home",), ["home"]),
        ],
    )
    def test_normalization(self, value, expected) -> None:
        assert normalize_insurance_types(value) == expected


class TestSearchRanking:
    def test_orders_by_similarity_then_insertion(self, engine, fake) -> None:
        hits = engine.search(make_embedding(1))
        assert [h.chunk.id for h in hits] == [2, 4, 9, 5, 1]
        assert hits[0].similarity == pytest.approx(0.93)

    def test_engine_reorders_rows_from_store(self, engine, rows) -> None:
        with patch("insurance_rag.retrieval.similar_chunks", return_value=list(reversed(rows))):
            hits = engine.search(make_embedding(1))
        assert [h.chunk.id for h in hits] == [2, 4, 9, 5, 1]

    def test_limit_applied_after_ranking(self, engine, fake) -> None:
        hits = engine.search(make_embedding(1), limit=2)
        assert [h.chunk.id for h in hits] == [2, 4]

    def test_limit_is_capped_by_system_maximum(self, engine, fake) -> None:
        engine.search(make_embedding(1), limit=settings.SEARCH_MAX_RESULTS + 500)
        assert fake.calls[-1]["limit"] == settings.SEARCH_MAX_RESULTS

    def test_no_limit_uses_system_maximum(self, engine, fake) -> None:
        engine.search(make_embedding(1))
        assert fake.calls[-1]["limit"] == settings.SEARCH_MAX_RESULTS

    def test_hits_carry_document_context(self, engine, fake) -> None:
        hit = engine.search(make_embedding(1), limit=1)[0]
        assert (hit.insurance_type, hit.document_title) == ("health", "Policy")


class TestSearchFiltering:
    def test_threshold_above_everything_returns_empty(self, engine, fake) -> None:
        assert engine.search(make_embedding(1), similarity_threshold=0.99) == []

    def test_threshold_is_forwarded(self, engine, fake) -> None:
        hits = engine.search(make_embedding(1), similarity_threshold=0.8)
        assert [h.chunk.id for h in hits] == [2, 4, 9]
        assert fake.calls[-1]["min_similarity"] == 0.8

    def test_single_type_filter(self, engine, fake) -> None:
        hits = engine.search(make_embedding(1), insurance_types="health")
        assert {h.insurance_type for h in hits} == {"health"}

    def test_noisy_list_equals_single_type(self, engine, fake) -> None:
        noisy = engine.search(make_embedding(1), insurance_types=["", None, "health"])
        single = engine.search(make_embedding(1), insurance_types="health")

        assert [h.chunk.id for h in noisy] == [h.chunk.id for h in single]
        assert fake.calls[0]["types"] == fake.calls[1]["types"] == ["health"]

    def test_empty_list_applies_no_filter(self, engine, fake) -> None:
        hits = engine.search(make_embedding(1), insurance_types=[])
        assert len(hits) == 5
        assert fake.calls[-1]["types"] == []

    def test_multiple_types_are_ored(self, engine, fake) -> None:
        hits = engine.search(make_embedding(1), insurance_types=["Life", "AUTO"])
        assert [h.chunk.id for h in hits] == [9, 5]


class TestSearchErrors:
    @pytest.mark.parametrize("dim", [settings.EMBEDDING_DIM - 1, settings.EMBEDDING_DIM + 1])
    def test_query_dimension_mismatch(self, engine, fake, dim) -> None:
        with pytest.raises(ValidationError):
            engine.search([0.1] * dim)
        assert fake.calls == []

    def test_query_must_be_numeric(self, engine, fake) -> None:
        with pytest.raises(ValidationError):
            engine.search(["x"] * settings.EMBEDDING_DIM)

    @pytest.mark.parametrize("limit", [0, -1, True])
    def test_invalid_limit(self, engine, fake, limit) -> None:
        with pytest.raises(ValidationError):
            engine.search(make_embedding(1), limit=limit)

    def test_store_failure_is_wrapped(self, engine) -> None:
        failure = OperationalError("SELECT", {}, Exception("canceling statement due to statement timeout"))
        with patch("insurance_rag.retrieval.similar_chunks", side_effect=failure):
            with pytest.raises(StorageError) as exc_info:
                engine.search(make_embedding(1))
        assert exc_info.value.__cause__ is failure


class TestSearchCaching:
    def test_cache_hit_skips_store(self, db, fake) -> None:
        cache = MagicMock()
        cache.get.return_value = []
        engine = RetrievalEngine(db, cache=cache)

        assert engine.search(make_embedding(1), insurance_types=" Health") == []

        assert fake.calls == []
        args = cache.get.call_args.args
        assert args[2:] == (settings.SEARCH_MAX_RESULTS, ["health"])

    def test_cache_miss_stores_ranked_hits(self, db, fake) -> None:
        cache = MagicMock()
        cache.get.return_value = None
        engine = RetrievalEngine(db, cache=cache)

        hits = engine.search(make_embedding(1), limit=3)

        cache.set.assert_called_once()
        assert cache.set.call_args.args[-1] == hits
