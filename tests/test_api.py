"""
Test suite for the FastAPI routes.

The app's database dependency is overridden with the in-memory SQLite store;
startup hooks are not run (TestClient is not used as a context manager).
"""

import uuid
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from insurance_rag.main import app, get_database
from tests.conftest import make_chunk, make_embedding


@pytest.fixture
def client(db):
    app.dependency_overrides[get_database] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def created_document(client):
    insurer = client.post("/insurers", json={"name": "Allianz", "insurance_types": ["health"]}).json()
    return client.post(
        "/documents",
        json={"insurer_id": insurer["id"], "title": "Health Policy 2024", "insurance_type": "health"},
    ).json()


def test_health_reports_database(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database": "ok"}


class TestIngestionRoutes:
    def test_create_insurer(self, client) -> None:
        response = client.post("/insurers", json={"name": "ERGO"})
        assert response.status_code == 201
        assert response.json()["name"] == "ERGO"

    def test_duplicate_insurer_is_409_with_tagged_error(self, client) -> None:
        client.post("/insurers", json={"name": "ERGO"})
        response = client.post("/insurers", json={"name": "ERGO"})

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["kind"] == "duplicate"
        assert "existing_id" in error["details"]

    def test_invalid_insurer_is_422(self, client) -> None:
        response = client.post("/insurers", json={"website": "https://example.de"})
        assert response.status_code == 422
        assert response.json()["error"]["kind"] == "validation"

    def test_document_for_unknown_insurer_is_404(self, client) -> None:
        response = client.post("/documents", json={"insurer_id": str(uuid.uuid4()), "title": "AVB"})
        assert response.status_code == 404
        assert response.json()["error"]["kind"] == "reference"

    def test_bulk_insert_and_count(self, client, created_document) -> None:
        doc = SimpleNamespace(**created_document)
        chunks = [make_chunk(doc, i) for i in range(5)]

        response = client.post("/chunks/bulk", json={"chunks": chunks, "batch_size": 2})

        assert response.status_code == 200
        assert response.json() == {"total": 5, "inserted": 5, "failed": 0, "errors": []}
        count = client.get(f"/documents/{created_document['id']}/chunks/count").json()
        assert count["count"] == 5

    def test_single_chunk(self, client, created_document) -> None:
        doc = SimpleNamespace(**created_document)
        response = client.post("/chunks", json=make_chunk(doc, 0))
        assert response.status_code == 201
        assert "embedding" not in response.json()


class TestCatalogRoutes:
    def test_list_insurers_and_documents(self, client, created_document) -> None:
        insurers = client.get("/insurers", params={"insurance_type": "health"}).json()
        assert [i["name"] for i in insurers] == ["Allianz"]

        documents = client.get(f"/insurers/{insurers[0]['id']}/documents").json()
        assert [d["title"] for d in documents] == ["Health Policy 2024"]
        assert documents[0]["language"] == "de"

    def test_stats(self, client, created_document) -> None:
        assert client.get("/stats").json() == {"insurers": 1, "documents": 1, "chunks": 0}


class TestSearchRoute:
    def test_search_reports_applied_filter(self, client) -> None:
        with patch("insurance_rag.retrieval.similar_chunks", return_value=[]) as similar:
            response = client.post(
                "/search",
                json={"query_embedding": make_embedding(3), "insurance_types": ["", None, "Health"]},
            )

        assert response.status_code == 200
        assert response.json() == {
            "results": [],
            "count": 0,
            "filtered_by_type": True,
            "insurance_types_filter": ["health"],
        }
        assert similar.call_args.args[2] == ["health"]

    def test_search_with_bad_vector_is_422(self, client) -> None:
        response = client.post("/search", json={"query_embedding": [0.1, 0.2]})
        assert response.status_code == 422
        assert response.json()["error"]["kind"] == "validation"
