"""
Shared fixtures and test utilities for PatraSaar tests.

Provides a scripted generator, sample documents and an in-memory pipeline
so that all tests run without API keys, databases, or network access.
"""

import sys
from pathlib import Path

import pytest
from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Path setup - ensure the execution package is importable
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

load_dotenv(PROJECT_ROOT / ".env")

# ---------------------------------------------------------------------------
# Sample legal documents
# ---------------------------------------------------------------------------
SAMPLE_AGREEMENT = """RENTAL AGREEMENT

This Rental Agreement is made between the Landlord and the Tenant.

Section 1. Rent
The Tenant shall pay a monthly rent of Rs. 25,000 on or before the fifth day of each month.

Section 2. Security Deposit
The Tenant shall pay a refundable security deposit of Rs. 1,00,000 before moving in.

Section 3. Termination
Either party may terminate this agreement by giving two months written notice.

Section 4. Maintenance
The Landlord is responsible for structural repairs. The Tenant shall keep the premises clean.
"""

SAMPLE_NOTICE = """LEGAL NOTICE

Article 1
The addressee has failed to repay the loan amount of Rs. 5,00,000 within the agreed period.

Article 2
The addressee is called upon to repay the outstanding amount within fifteen days of receipt.
"""

FAKE_ANSWER = "Summary: The rent is due monthly [Source 1]."
FAKE_SUMMARY = "A rental agreement between a landlord and a tenant."


# ---------------------------------------------------------------------------
# Scripted generation provider
# ---------------------------------------------------------------------------

class FakeGenerator:
    """Deterministic stand-in for a chat provider. Records every call."""

    configured = True

    def __init__(self, answer=FAKE_ANSWER, summary=FAKE_SUMMARY, tokens_used=42):
        self.answer = answer
        self.summary = summary
        self.tokens_used = tokens_used
        self.calls = []
        self.fail_answer_with = None   # exception raised on answer calls
        self.fail_summary_with = None  # exception raised on summary calls

    def chat(self, messages, max_tokens=2048, temperature=0.3, timeout=None):
        from execution.patrasaar.generation import ChatResponse
        from execution.patrasaar.legal_patterns import LLM_PROMPTS

        self.calls.append({"messages": messages, "max_tokens": max_tokens, "timeout": timeout})
        is_summary = messages[0].content == LLM_PROMPTS["summary_system"]

        if is_summary:
            if self.fail_summary_with is not None:
                raise self.fail_summary_with
            content = self.summary
        else:
            if self.fail_answer_with is not None:
                raise self.fail_answer_with
            content = self.answer

        return ChatResponse(content=content, tokens_used=self.tokens_used, provider="fake", model="fake-model")

    @property
    def answer_calls(self):
        from execution.patrasaar.legal_patterns import LLM_PROMPTS
        return [c for c in self.calls if c["messages"][0].content == LLM_PROMPTS["rag_system"]]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_agreement():
    return SAMPLE_AGREEMENT


@pytest.fixture
def normalized_agreement():
    from execution.patrasaar.chunker import normalize_text
    return normalize_text(SAMPLE_AGREEMENT)


@pytest.fixture
def chunker():
    from execution.patrasaar.chunker import LegalChunker
    return LegalChunker()


@pytest.fixture
def hash_embeddings():
    from execution.patrasaar.embeddings import HashEmbeddingService
    return HashEmbeddingService(dimensions=384)


@pytest.fixture
def memory_index():
    from execution.patrasaar.vector_store import InMemoryVectorIndex
    return InMemoryVectorIndex(dimensions=384)


@pytest.fixture
def metadata_store():
    from execution.patrasaar.metadata_store import InMemoryMetadataStore
    return InMemoryMetadataStore()


@pytest.fixture
def fake_generator():
    return FakeGenerator()


@pytest.fixture
def pipeline(tmp_path, hash_embeddings, memory_index, metadata_store, fake_generator):
    """A fully in-memory pipeline with a scripted generator."""
    from execution.patrasaar.blob_store import LocalBlobStore
    from execution.patrasaar.chunker import LegalChunker
    from execution.patrasaar.metrics import MetricsCollector
    from execution.patrasaar.pipeline import RAGPipeline
    from execution.patrasaar.settings import PipelineSettings
    from execution.patrasaar.text_extractor import TextExtractor

    return RAGPipeline(
        extractor=TextExtractor(),
        chunker=LegalChunker(),
        embeddings=hash_embeddings,
        vector_index=memory_index,
        metadata_store=metadata_store,
        generator=fake_generator,
        settings=PipelineSettings(),
        metrics=MetricsCollector(),
        blob_store=LocalBlobStore(str(tmp_path / "blobs")),
    )


def ingest_text(pipeline, owner_id, text, filename="agreement.txt"):
    """Submit and ingest a plain-text document; returns (record, result)."""
    data = text.encode("utf-8")
    record = pipeline.submit_document(owner_id, data, filename, "txt")
    result = pipeline.ingest(record.id, owner_id, data, "txt", filename)
    return record, result
