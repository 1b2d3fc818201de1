"""
Tests for execution/patrasaar/api.py

Covers: owner header enforcement, upload validation and background
        ingestion, document listing/detail/delete, query error mapping,
        feedback, usage and metrics endpoints.

The shared pipeline dependency is overridden with the in-memory pipeline
from conftest, so no environment configuration is read.
"""

import pytest

from tests.conftest import SAMPLE_AGREEMENT

OWNER = {"X-User-Id": "user-1"}
OTHER_OWNER = {"X-User-Id": "user-2"}


@pytest.fixture
def client(pipeline):
    from fastapi.testclient import TestClient
    from execution.patrasaar.api import app, get_pipeline

    app.dependency_overrides[get_pipeline] = lambda: pipeline
    yield TestClient(app)
    app.dependency_overrides.clear()


def _upload(client, content=SAMPLE_AGREEMENT.encode("utf-8"), filename="agreement.txt",
            content_type="text/plain", headers=OWNER):
    return client.post(
        "/api/v1/documents/upload",
        files={"file": (filename, content, content_type)},
        headers=headers,
    )


@pytest.fixture
def uploaded(client):
    """Id of a fully ingested agreement owned by user-1."""
    response = _upload(client)
    assert response.status_code == 200
    return response.json()["id"]


# ---------------------------------------------------------------------------
# Health and auth
# ---------------------------------------------------------------------------

class TestHealthAndAuth:

    def test_health(self, client):
        response = client.get("/api/v1/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["embedding_model"] == "hash-simhash-v1:384"
        assert data["llm_configured"] is True

    def test_missing_owner_header(self, client):
        assert client.get("/api/v1/documents").status_code == 401
        assert client.post("/api/v1/query", json={"query": "rent?"}).status_code == 401

    def test_blank_owner_header(self, client):
        response = client.get("/api/v1/documents", headers={"X-User-Id": "  "})
        assert response.status_code == 401


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

class TestDocuments:

    def test_upload_then_completed(self, client):
        response = _upload(client)
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "processing"
        assert body["title"] == "agreement"

        detail = client.get(f"/api/v1/documents/{body['id']}", headers=OWNER).json()
        assert detail["status"] == "completed"
        assert detail["file_type"] == "txt"
        assert len(detail["chunks"]) == 5
        assert detail["chunks"][1]["section"] == "Section 1. Rent"
        assert "raw_text" not in detail

    def test_upload_handler_is_sync(self):
        import inspect
        from execution.patrasaar.api import upload_document
        # Sync handlers run in the threadpool, off the event loop
        assert inspect.iscoroutinefunction(upload_document) is False

    def test_content_type_used_without_suffix(self, client):
        response = _upload(client, filename="agreement", content_type="text/plain")
        assert response.status_code == 200

    def test_unsupported_type(self, client):
        response = _upload(client, filename="photo.png", content_type="image/png")
        assert response.status_code == 400

    def test_empty_file(self, client):
        response = _upload(client, content=b"")
        assert response.status_code == 400

    def test_too_large(self, client, pipeline):
        pipeline.settings.max_upload_bytes = 100
        response = _upload(client, content=b"x" * 101)
        assert response.status_code == 413

    def test_list(self, client, uploaded):
        _upload(client, headers=OTHER_OWNER)

        data = client.get("/api/v1/documents", headers=OWNER).json()
        assert data["total"] == 1
        assert data["documents"][0]["id"] == uploaded

        data = client.get("/api/v1/documents?status=pending", headers=OWNER).json()
        assert data["total"] == 0

    def test_list_invalid_status(self, client):
        response = client.get("/api/v1/documents?status=archived", headers=OWNER)
        assert response.status_code == 400

    def test_list_limit_bounds(self, client):
        response = client.get("/api/v1/documents?limit=500", headers=OWNER)
        assert response.status_code == 422

    def test_other_owners_document(self, client, uploaded):
        response = client.get(f"/api/v1/documents/{uploaded}", headers=OTHER_OWNER)
        assert response.status_code == 404

    def test_delete(self, client, uploaded, pipeline):
        response = client.delete(f"/api/v1/documents/{uploaded}", headers=OWNER)
        assert response.status_code == 200
        assert response.json()["status"] == "deleted"
        assert pipeline.vector_index.count({"documentId": uploaded}) == 0

        assert client.get(f"/api/v1/documents/{uploaded}", headers=OWNER).status_code == 404
        assert client.delete(f"/api/v1/documents/{uploaded}", headers=OWNER).status_code == 404


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

class TestQuery:

    def test_query(self, client, uploaded):
        from execution.patrasaar.legal_patterns import DISCLAIMER
        response = client.post(
            "/api/v1/query",
            json={"query": "Is the security deposit refundable?", "top_k": 3},
            headers=OWNER,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["answer"].endswith(DISCLAIMER)
        assert data["disclaimer"] == DISCLAIMER
        assert len(data["citations"]) == 3
        assert data["citations"][0]["source"] == uploaded
        assert data["query_id"]
        assert -1.0 <= data["confidence"] <= 1.0

    def test_negative_confidence_returned(self, client, uploaded, pipeline):
        from unittest.mock import patch
        from execution.patrasaar.vector_store import SearchResult
        results = [
            SearchResult(id="c1", content="Rent is due.", score=-0.5, payload={"documentId": uploaded}),
            SearchResult(id="c2", content="Deposit.", score=-0.1, payload={"documentId": uploaded}),
        ]
        with patch.object(pipeline.vector_index, "search", return_value=results):
            response = client.post("/api/v1/query", json={"query": "When is rent due?"}, headers=OWNER)
        assert response.status_code == 200
        assert response.json()["confidence"] == pytest.approx(-0.3)

    def test_query_single_document(self, client, uploaded, fake_generator):
        response = client.post(
            "/api/v1/query",
            json={"query": "When is rent due?", "document_id": uploaded},
            headers=OWNER,
        )
        assert response.status_code == 200
        assert fake_generator.answer_calls[-1]["timeout"] == 120.0

    def test_document_not_processed(self, client, pipeline):
        record = pipeline.submit_document("user-1", b"pending text", "pending.txt", "txt")
        response = client.post(
            "/api/v1/query",
            json={"query": "What does it say?", "document_id": record.id},
            headers=OWNER,
        )
        assert response.status_code == 400

    def test_unknown_document(self, client):
        response = client.post(
            "/api/v1/query",
            json={"query": "What does it say?", "document_id": "missing"},
            headers=OWNER,
        )
        assert response.status_code == 404

    def test_blank_query(self, client):
        response = client.post("/api/v1/query", json={"query": "   "}, headers=OWNER)
        assert response.status_code == 400

    def test_query_too_long(self, client, pipeline):
        pipeline.settings.max_question_chars = 10
        response = client.post("/api/v1/query", json={"query": "x" * 50}, headers=OWNER)
        assert response.status_code == 400

    def test_top_k_bounds(self, client):
        response = client.post("/api/v1/query", json={"query": "rent?", "top_k": 50}, headers=OWNER)
        assert response.status_code == 422

    @pytest.mark.parametrize("error_kwargs,status", [
        ({"timed_out": False}, 502),
        ({"timed_out": True}, 504),
    ])
    def test_generation_errors(self, client, uploaded, fake_generator, error_kwargs, status):
        from execution.patrasaar.errors import GenerationError
        fake_generator.fail_answer_with = GenerationError("upstream", provider="fake", **error_kwargs)
        response = client.post("/api/v1/query", json={"query": "When is rent due?"}, headers=OWNER)
        assert response.status_code == status

    def test_no_provider(self, client, uploaded, fake_generator):
        from execution.patrasaar.errors import NoProviderConfiguredError
        fake_generator.fail_answer_with = NoProviderConfiguredError("no keys")
        response = client.post("/api/v1/query", json={"query": "When is rent due?"}, headers=OWNER)
        assert response.status_code == 503


# ---------------------------------------------------------------------------
# Feedback, usage, metrics
# ---------------------------------------------------------------------------

class TestFeedbackUsageMetrics:

    def _ask(self, client):
        response = client.post("/api/v1/query", json={"query": "When is rent due?"}, headers=OWNER)
        return response.json()["query_id"]

    def test_feedback(self, client, uploaded, pipeline):
        query_id = self._ask(client)
        response = client.post(
            f"/api/v1/queries/{query_id}/feedback", json={"feedback": "helpful"}, headers=OWNER,
        )
        assert response.status_code == 200
        assert pipeline.metadata.get_query(query_id).feedback == "helpful"

    def test_feedback_other_owner(self, client, uploaded):
        query_id = self._ask(client)
        response = client.post(
            f"/api/v1/queries/{query_id}/feedback", json={"feedback": "helpful"}, headers=OTHER_OWNER,
        )
        assert response.status_code == 404

    def test_feedback_invalid_value(self, client, uploaded):
        query_id = self._ask(client)
        response = client.post(
            f"/api/v1/queries/{query_id}/feedback", json={"feedback": "great"}, headers=OWNER,
        )
        assert response.status_code == 422

    def test_usage(self, client, uploaded):
        self._ask(client)
        self._ask(client)
        data = client.get("/api/v1/usage", headers=OWNER).json()
        assert data["documents_uploaded"] == 1
        assert data["queries"] == 2
        assert len(data["period"]) == 7

        other = client.get("/api/v1/usage", headers=OTHER_OWNER).json()
        assert other["queries"] == 0

    def test_metrics(self, client, uploaded):
        self._ask(client)
        data = client.get("/api/v1/metrics").json()
        assert data["queries"]["total"] == 1
        assert data["ingestion"]["documents"] == 1
        assert "uptime_seconds" in data
