"""
RAG Pipeline - document ingestion and question answering

Ingestion: bytes -> text -> normalized text -> legal chunks -> embeddings
-> vector index + chunk records -> summary -> completed.

Query: question -> embedding -> filtered vector search -> numbered context
-> grounded answer -> citations + confidence -> query record.

Every collaborator is passed in; nothing here reads the environment.
"""

import time
import threading
import uuid
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .blob_store import storage_path
from .chunker import LegalChunker, normalize_text
from .citation import Citation, CitationExtractor, build_context
from .embeddings import get_embedding_service
from .errors import (
    DocumentNotFoundError,
    EmbeddingDimensionMismatchError,
    EmptyDocumentError,
    PatraSaarError,
    QueryFailedError,
)
from .generation import ChatMessage, LazyProvider
from .legal_patterns import DISCLAIMER, LLM_PROMPTS, NO_RESULTS_ANSWER
from .metadata_store import (
    FEEDBACK_VALUES,
    ChunkRecord,
    DocumentRecord,
    QueryRecord,
    UsageEvent,
    get_metadata_store,
)
from .metrics import MetricsCollector
from .settings import PipelineSettings
from .text_extractor import TextExtractor, normalize_file_type
from .vector_store import get_vector_index

logger = logging.getLogger(__name__)


@dataclass
class IngestionResult:
    document_id: str
    chunks_created: int
    status: str  # "completed" or "failed"
    error: Optional[str] = None
    processing_time_ms: int = 0
    error_type: Optional[str] = None  # exception class name on failure

    def to_dict(self) -> dict:
        return {
            "document_id": self.document_id,
            "chunks_created": self.chunks_created,
            "status": self.status,
            "error": self.error,
            "processing_time_ms": self.processing_time_ms,
            "error_type": self.error_type,
        }


@dataclass
class QueryResult:
    answer: str
    citations: list[Citation] = field(default_factory=list)
    confidence: float = 0.0
    tokens_used: int = 0
    processing_time_ms: int = 0
    disclaimer: str = DISCLAIMER
    query_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "query_id": self.query_id,
            "answer": self.answer,
            "citations": [c.to_dict() for c in self.citations],
            "confidence": self.confidence,
            "tokens_used": self.tokens_used,
            "processing_time_ms": self.processing_time_ms,
            "disclaimer": self.disclaimer,
        }


def ensure_disclaimer(answer: str) -> str:
    """Append the not-legal-advice line if the model left it out."""
    if DISCLAIMER in answer:
        return answer
    return f"{answer.rstrip()}\n\n{DISCLAIMER}"


def confidence_from_scores(scores: list[float]) -> float:
    """Mean similarity, capped at 1.0. A ranking signal, not a probability."""
    if not scores:
        return 0.0
    return min(sum(scores) / len(scores), 1.0)


class RAGPipeline:
    """
    Orchestrates ingestion and query over injected components.

    Args:
        extractor: TextExtractor
        chunker: LegalChunker
        embeddings: Embedding provider (embed / embed_batch / dimensions / model_id)
        vector_index: Vector index (upsert_many / search / delete_by_filter)
        metadata_store: MetadataStore implementation
        generator: Generation provider with ``chat(...)``
        settings: PipelineSettings (limits, token budget, temperature)
        metrics: MetricsCollector
        blob_store: Optional BlobStore for raw uploads
    """

    def __init__(
        self,
        extractor,
        chunker,
        embeddings,
        vector_index,
        metadata_store,
        generator,
        settings: Optional[PipelineSettings] = None,
        metrics: Optional[MetricsCollector] = None,
        blob_store=None,
    ):
        if embeddings.dimensions != vector_index.dimensions:
            raise EmbeddingDimensionMismatchError(vector_index.dimensions, embeddings.dimensions)

        self.extractor = extractor
        self.chunker = chunker
        self.embeddings = embeddings
        self.vector_index = vector_index
        self.metadata = metadata_store
        self.generator = generator
        self.settings = settings or PipelineSettings()
        self.metrics = metrics or MetricsCollector()
        self.blob_store = blob_store
        self.citation_extractor = CitationExtractor(preview_chars=self.settings.citation_preview_chars)
        self._ingest_locks: dict[str, threading.Lock] = {}
        self._ingest_locks_guard = threading.Lock()

    # =========================================================================
    # Documents
    # =========================================================================

    def submit_document(
        self,
        owner_id: str,
        data: bytes,
        filename: str,
        file_type: str,
        title: Optional[str] = None,
        document_id: Optional[str] = None,
    ) -> DocumentRecord:
        """
        Register an upload as a ``pending`` document and store its bytes.

        Ingestion is a separate step (``ingest``) so callers can run it in
        the background.
        """
        kind = normalize_file_type(file_type)
        document_id = document_id or str(uuid.uuid4())
        path = storage_path(owner_id, document_id, kind)

        if self.blob_store is not None:
            self.blob_store.put(path, data)

        record = DocumentRecord(
            id=document_id,
            owner_id=owner_id,
            original_filename=filename,
            file_type=kind,
            file_size=len(data),
            title=title or Path(filename).stem,
            storage_path=path if self.blob_store is not None else None,
        )
        self.metadata.create_document(record)
        logger.info(f"Registered document {document_id} ({filename}, {len(data)} bytes) for {owner_id}")
        return record

    def ingest(
        self,
        document_id: str,
        owner_id: str,
        data: bytes,
        file_type: str,
        filename: Optional[str] = None,
    ) -> IngestionResult:
        """
        Extract, chunk, embed and index a document.

        Never raises for document-level failures: the document is marked
        ``failed`` and the error is returned in the result.

        Ingestions of the same document run one at a time; the last one to
        finish owns the stored chunks and vectors.
        """
        with self._document_lock(document_id):
            return self._ingest(document_id, owner_id, data, file_type, filename)

    def _document_lock(self, document_id: str) -> threading.Lock:
        with self._ingest_locks_guard:
            return self._ingest_locks.setdefault(document_id, threading.Lock())

    def _ingest(
        self,
        document_id: str,
        owner_id: str,
        data: bytes,
        file_type: str,
        filename: Optional[str],
    ) -> IngestionResult:
        start_time = time.time()
        self.metadata.update_status(document_id, "processing")
        logger.info(f"Ingesting document {document_id} ({filename or file_type})")

        try:
            extracted = self.extractor.extract(data, file_type, filename)
            text = normalize_text(extracted.text)
            logger.info(f"  Extracted {len(text)} chars from {extracted.page_count} pages")

            chunks = self.chunker.chunk(text, document_id)
            if not chunks:
                raise EmptyDocumentError("No text could be extracted from document")
            logger.info(f"  Created {len(chunks)} chunks")

            vectors = self.embeddings.embed_batch([c.content for c in chunks])
            if len(vectors) != len(chunks):
                raise QueryFailedError(
                    f"Embedding count mismatch: {len(chunks)} chunks, {len(vectors)} embeddings"
                )

            document = self.metadata.get_document(document_id)
            document_type = document.document_type if document else None

            self.metadata.replace_chunks(document_id, [
                ChunkRecord(
                    id=c.chunk_id,
                    document_id=document_id,
                    chunk_index=c.chunk_index,
                    content=c.content,
                    section=c.section,
                    clause_number=c.clause_number,
                    start_char=c.start_char,
                    end_char=c.end_char,
                    token_count=c.token_count,
                )
                for c in chunks
            ])

            points = []
            for chunk, vector in zip(chunks, vectors):
                payload = {
                    "documentId": document_id,
                    "userId": owner_id,
                    "chunkIndex": chunk.chunk_index,
                    "section": chunk.section,
                    "clauseNumber": chunk.clause_number,
                    "content": chunk.content,
                    "embeddingModel": self.embeddings.model_id,
                }
                if document_type:
                    payload["documentType"] = document_type
                points.append((chunk.chunk_id, vector, payload))
            self.vector_index.upsert_many(points)
            logger.info(f"  Indexed {len(points)} vectors")

            # Drop vectors left by a previous ingestion of this document
            stale = self.vector_index.delete_by_filter(
                {"documentId": document_id}, keep_ids=[c.chunk_id for c in chunks],
            )
            if stale:
                logger.info(f"  Replaced {stale} vectors from a previous ingestion")

            summary = self._summarize(text)
            self.metadata.mark_completed(document_id, text, summary)

        except Exception as e:
            elapsed_ms = int((time.time() - start_time) * 1000)
            logger.error(f"Ingestion failed for document {document_id}: {type(e).__name__}: {e}")
            self.metadata.update_status(document_id, "failed", error=str(e))
            self._discard_partial(document_id)
            self.metrics.record_error(type(e).__name__)
            self.metrics.record_ingestion(owner_id, document_id, 0, elapsed_ms, succeeded=False)
            return IngestionResult(
                document_id=document_id,
                chunks_created=0,
                status="failed",
                error=str(e),
                error_type=type(e).__name__,
                processing_time_ms=elapsed_ms,
            )

        elapsed_ms = int((time.time() - start_time) * 1000)
        self.metadata.record_usage(UsageEvent(
            owner_id=owner_id,
            action_type="document_upload",
            metadata={
                "documentId": document_id,
                "chunksCreated": len(chunks),
                "processingTimeMs": elapsed_ms,
            },
        ))
        self.metrics.record_ingestion(owner_id, document_id, len(chunks), elapsed_ms)
        logger.info(f"Document {document_id} completed: {len(chunks)} chunks in {elapsed_ms}ms")

        return IngestionResult(
            document_id=document_id,
            chunks_created=len(chunks),
            status="completed",
            processing_time_ms=elapsed_ms,
        )

    def ingest_stored(self, document_id: str) -> IngestionResult:
        """Ingest a previously submitted document from the blob store."""
        document = self.metadata.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        data = self.blob_store.get(document.storage_path)
        return self.ingest(
            document_id, document.owner_id, data, document.file_type, document.original_filename,
        )

    def _discard_partial(self, document_id: str) -> None:
        """Remove vectors and chunk records of a failed ingestion."""
        try:
            self.vector_index.delete_by_filter({"documentId": document_id})
            self.metadata.delete_chunks(document_id)
        except PatraSaarError as e:
            logger.warning(f"Could not clean up partial ingestion of {document_id}: {e}")

    def _summarize(self, text: str) -> str:
        limit = self.settings.summary_char_limit
        excerpt = text[:limit] + ("..." if len(text) > limit else "")
        response = self.generator.chat(
            [
                ChatMessage("system", LLM_PROMPTS["summary_system"]),
                ChatMessage("user", LLM_PROMPTS["summary_user"].format(text=excerpt)),
            ],
            max_tokens=self.settings.max_answer_tokens,
            temperature=self.settings.temperature,
        )
        return response.content

    def delete_document(self, document_id: str, owner_id: str) -> bool:
        """Remove a document's vectors, chunks, stored file and record."""
        document = self.metadata.get_document(document_id, owner_id=owner_id)
        if document is None:
            raise DocumentNotFoundError(document_id)

        removed = self.vector_index.delete_by_filter({"documentId": document_id})
        self.metadata.delete_chunks(document_id)
        if self.blob_store is not None and document.storage_path:
            self.blob_store.delete(document.storage_path)
        deleted = self.metadata.delete_document(document_id, owner_id=owner_id)
        with self._ingest_locks_guard:
            self._ingest_locks.pop(document_id, None)
        logger.info(f"Deleted document {document_id} ({removed} vectors)")
        return deleted

    # =========================================================================
    # Queries
    # =========================================================================

    def query(
        self,
        owner_id: str,
        question: str,
        document_id: Optional[str] = None,
        top_k: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> QueryResult:
        """
        Answer a question from the owner's documents (or one document).

        Args:
            owner_id: Asking user; scopes the search when no document is given
            question: Natural-language question
            document_id: Restrict retrieval to this document
            top_k: Number of passages to retrieve
            timeout: Generation timeout in seconds

        Raises:
            DocumentNotFoundError: ``document_id`` unknown or not the owner's
            GenerationError / NoProviderConfiguredError: From the generator
            NotConfiguredError: Vector index unreachable with no cached match
        """
        if not question or not question.strip():
            raise ValueError("Question must not be empty")

        start_time = time.time()
        top_k = top_k or self.settings.default_top_k

        document_title = None
        if document_id:
            document = self.metadata.get_document(document_id, owner_id=owner_id)
            if document is None:
                raise DocumentNotFoundError(document_id)
            document_title = document.title or document.original_filename

        with self.metrics.track_query(owner_id, question) as tracker:
            query_vector = self.embeddings.embed(question)
            search_filter = {"documentId": document_id} if document_id else {"userId": owner_id}
            # Vectors from another embedding model are not comparable with this query
            search_filter["embeddingModel"] = self.embeddings.model_id
            results = self.vector_index.search(query_vector, top_k, search_filter)
            tracker.set_results(len(results))

            if not results:
                logger.info(f"No results for query from {owner_id}")
                answer = f"{NO_RESULTS_ANSWER}\n\n{DISCLAIMER}"
                citations = []
                confidence = 0.0
                tokens_used = 0
            else:
                titles = self._document_titles(results, owner_id)
                citations = self.citation_extractor.extract(results, document_titles=titles)
                context = build_context(results)

                document_line = f"Document: {document_title}\n\n" if document_title else ""
                response = self.generator.chat(
                    [
                        ChatMessage("system", LLM_PROMPTS["rag_system"]),
                        ChatMessage("user", LLM_PROMPTS["rag_user"].format(
                            document_line=document_line,
                            context=context,
                            question=question,
                        )),
                    ],
                    max_tokens=self.settings.max_answer_tokens,
                    temperature=self.settings.temperature,
                    timeout=timeout,
                )
                answer = ensure_disclaimer(response.content)
                confidence = confidence_from_scores([r.score for r in results])
                tokens_used = response.tokens_used

        processing_time_ms = int((time.time() - start_time) * 1000)
        record = QueryRecord(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            question=question,
            answer=answer,
            citations=[c.to_dict() for c in citations],
            confidence=confidence,
            tokens_used=tokens_used,
            processing_time_ms=processing_time_ms,
            document_id=document_id,
        )
        self.metadata.insert_query(record)
        self.metadata.record_usage(UsageEvent(
            owner_id=owner_id,
            action_type="query",
            metadata={"queryId": record.id, "documentId": document_id, "tokensUsed": tokens_used},
        ))

        return QueryResult(
            answer=answer,
            citations=citations,
            confidence=confidence,
            tokens_used=tokens_used,
            processing_time_ms=processing_time_ms,
            query_id=record.id,
        )

    def _document_titles(self, results, owner_id: str) -> dict[str, str]:
        titles = {}
        for document_id in {r.payload.get("documentId") for r in results}:
            if not document_id:
                continue
            document = self.metadata.get_document(document_id, owner_id=owner_id)
            if document is not None:
                titles[document_id] = document.title or document.original_filename
        return titles

    def record_feedback(self, query_id: str, owner_id: str, feedback: str) -> bool:
        """Set helpful/not_helpful on one of the owner's queries."""
        if feedback not in FEEDBACK_VALUES:
            raise ValueError(f"Feedback must be one of {FEEDBACK_VALUES}")
        updated = self.metadata.set_query_feedback(query_id, owner_id, feedback)
        if not updated:
            logger.warning(f"Feedback for unknown query {query_id} from {owner_id}")
        return updated


def build_pipeline(
    settings: PipelineSettings,
    metrics: Optional[MetricsCollector] = None,
    generator=None,
    blob_store=None,
) -> RAGPipeline:
    """Assemble a pipeline from settings (used by the API and the CLI)."""
    metrics = metrics or MetricsCollector()
    embeddings = get_embedding_service(
        provider=settings.embedding_provider,
        model=settings.embedding_model,
        dimensions=settings.embedding_dimensions,
    )
    vector_index = get_vector_index(
        backend=settings.vector_backend,
        dimensions=embeddings.dimensions,
        connection_string=settings.database_url,
        table_name=settings.vector_table,
        memory_fallback=settings.vector_memory_fallback,
        memory_max_points=settings.vector_memory_max_points,
        metrics=metrics,
    )
    metadata_store = get_metadata_store(settings.metadata_backend, settings.database_url)
    generator = generator or LazyProvider(
        settings.llm_api_keys,
        preferred=settings.llm_provider,
        timeout=settings.llm_timeout_seconds,
    )
    logger.info(
        f"Pipeline: embeddings={embeddings.model_id}, vectors={settings.vector_backend}, "
        f"metadata={settings.metadata_backend}"
    )
    return RAGPipeline(
        extractor=TextExtractor(),
        chunker=LegalChunker(),
        embeddings=embeddings,
        vector_index=vector_index,
        metadata_store=metadata_store,
        generator=generator,
        settings=settings,
        metrics=metrics,
        blob_store=blob_store,
    )
