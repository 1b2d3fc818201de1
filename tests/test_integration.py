"""
Live integration tests against PostgreSQL with the pgvector extension.

Exercises the full pipeline with the pgvector index and the Postgres
metadata store. Embeddings use the hash space and generation uses the
scripted FakeGenerator, so only a database is needed.

Requires in .env:
    DATABASE_URL (or POSTGRES_URL)

Run with:
    pytest tests/test_integration.py -v -m integration
"""

import os
import uuid

import pytest

from tests.conftest import SAMPLE_AGREEMENT, FakeGenerator, ingest_text

pytestmark = pytest.mark.integration

DATABASE_URL = os.getenv("DATABASE_URL") or os.getenv("POSTGRES_URL")

skip_no_db = pytest.mark.skipif(
    not DATABASE_URL,
    reason="Missing DATABASE_URL or POSTGRES_URL in .env",
)


@pytest.fixture(scope="module")
def live_pipeline(tmp_path_factory):
    """Pipeline on the real database, sharing one connection pool per module."""
    from execution.patrasaar.blob_store import LocalBlobStore
    from execution.patrasaar.pipeline import build_pipeline
    from execution.patrasaar.settings import PipelineSettings

    settings = PipelineSettings(
        vector_backend="pgvector",
        metadata_backend="postgres",
        database_url=DATABASE_URL,
        vector_table="document_vectors_integration",
    )
    pipeline = build_pipeline(
        settings,
        generator=FakeGenerator(),
        blob_store=LocalBlobStore(str(tmp_path_factory.mktemp("blobs"))),
    )
    yield pipeline
    pipeline.vector_index.close()


@skip_no_db
class TestLivePipeline:

    def test_ingest_query_delete(self, live_pipeline):
        from execution.patrasaar.legal_patterns import DISCLAIMER
        owner_id = f"integration-{uuid.uuid4()}"

        record, result = ingest_text(live_pipeline, owner_id, SAMPLE_AGREEMENT)
        try:
            assert result.status == "completed"
            assert result.chunks_created == 5
            assert live_pipeline.vector_index.count({"documentId": record.id}) == 5

            stored = live_pipeline.metadata.get_document(record.id, owner_id=owner_id)
            assert stored.status == "completed"
            assert len(live_pipeline.metadata.list_chunks(record.id)) == 5

            answer = live_pipeline.query(owner_id, "Is the security deposit refundable?", top_k=2)
            assert answer.answer.endswith(DISCLAIMER)
            assert len(answer.citations) == 2
            assert all(c.source == record.id for c in answer.citations)
            assert -1.0 <= answer.confidence <= 1.0

            assert live_pipeline.record_feedback(answer.query_id, owner_id, "helpful") is True
            assert live_pipeline.metadata.count_usage(owner_id, "query") == 1
        finally:
            live_pipeline.delete_document(record.id, owner_id)

        assert live_pipeline.metadata.get_document(record.id) is None
        assert live_pipeline.vector_index.count({"documentId": record.id}) == 0

    def test_owner_isolation(self, live_pipeline):
        from execution.patrasaar.legal_patterns import NO_RESULTS_ANSWER
        owner_id = f"integration-{uuid.uuid4()}"
        record, _ = ingest_text(live_pipeline, owner_id, SAMPLE_AGREEMENT)
        try:
            answer = live_pipeline.query(f"integration-{uuid.uuid4()}", "When is rent due?")
            assert answer.answer.startswith(NO_RESULTS_ANSWER)
        finally:
            live_pipeline.delete_document(record.id, owner_id)
