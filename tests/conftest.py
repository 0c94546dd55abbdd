"""
Shared test fixtures.

Provides: in-memory SQLite Database (foreign keys on), engines wired to it,
sample insurer/document records and embedding helpers.
Dependencies: pytest, sqlalchemy
"""

import random
from typing import List

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.pool import StaticPool

from insurance_rag import models  # noqa: F401
from insurance_rag.catalog import Catalog
from insurance_rag.config import settings
from insurance_rag.db import Base, Database
from insurance_rag.ingestion import IngestionEngine


def make_embedding(seed: int = 0, dim: int = None) -> List[float]:
    """Deterministic pseudo-random vector of the configured dimensionality."""
    rng = random.Random(seed)
    return [rng.uniform(-1.0, 1.0) for _ in range(dim or settings.EMBEDDING_DIM)]


def make_chunk(document, index: int, **overrides) -> dict:
    chunk = {
        "document_id": str(document.id),
        "insurer_id": str(document.insurer_id),
        "chunk_text": f"Paragraph {index} of {document.title}",
        "chunk_index": index,
        "embedding": make_embedding(index),
        "token_count": 42,
    }
    chunk.update(overrides)
    return chunk


@pytest.fixture
def db():
    """
    In-memory SQLite store built from the ORM metadata.

    Yields:
        Database: Store client; disposed after the test.
    """
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    database = Database(engine)
    yield database
    Base.metadata.drop_all(engine)
    database.close()


@pytest.fixture
def ingestion(db: Database) -> IngestionEngine:
    return IngestionEngine(db)


@pytest.fixture
def catalog(db: Database) -> Catalog:
    return Catalog(db)


@pytest.fixture
def insurer(ingestion: IngestionEngine):
    return ingestion.insert_insurer(
        {"name": "Allianz", "website": "https://www.allianz.de", "insurance_types": ["health", "life"]}
    )


@pytest.fixture
def document(ingestion: IngestionEngine, insurer):
    return ingestion.insert_document(
        {"insurer_id": str(insurer.id), "title": "Health Policy 2024", "insurance_type": "health"}
    )
