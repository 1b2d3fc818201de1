"""
FastAPI Backend for PatraSaar

REST endpoints for document upload, retrieval-augmented questions,
document management, query feedback, usage and metrics.

Authentication happens upstream; the authenticated user id arrives in the
``X-User-Id`` header and scopes every request.

Run with: uvicorn execution.patrasaar.api:app --host 0.0.0.0 --port 8000
"""

import os
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, UploadFile, File, Depends, Header, BackgroundTasks, Query
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

from . import __version__
from .api_models import (
    QueryRequest, QueryResponse, CitationInfo,
    DocumentInfo, DocumentDetail, DocumentListResponse, ChunkInfo,
    UploadResponse, FeedbackRequest, UsageResponse, HealthResponse,
)
from .blob_store import LocalBlobStore
from .errors import (
    PatraSaarError,
    DocumentNotFoundError,
    GenerationError,
    NoProviderConfiguredError,
    NotConfiguredError,
    QueryFailedError,
    UnsupportedFormatError,
)
from .metadata_store import DOCUMENT_STATUSES, DocumentRecord
from .metrics import get_metrics_collector
from .pipeline import RAGPipeline, build_pipeline
from .settings import PipelineSettings
from .text_extractor import normalize_file_type

# Load environment variables
load_dotenv()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="PatraSaar API",
    description="Plain-language answers about legal documents, with citations",
    version=__version__,
)

# Configure CORS: use CORS_ORIGINS env var (comma-separated) or default to localhost
_cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in _cors_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Service Container
# =============================================================================

class ServiceContainer:
    """Builds the pipeline once from environment settings and caches it."""

    def __init__(self):
        self._pipeline: Optional[RAGPipeline] = None
        self._lock = threading.Lock()

    def get_pipeline(self) -> RAGPipeline:
        if self._pipeline is None:
            with self._lock:
                if self._pipeline is None:
                    settings = PipelineSettings.from_env()
                    self._pipeline = build_pipeline(
                        settings,
                        metrics=get_metrics_collector(),
                        blob_store=LocalBlobStore(settings.document_storage_dir),
                    )
        return self._pipeline


_container = ServiceContainer()


def get_pipeline() -> RAGPipeline:
    """FastAPI dependency for the shared pipeline."""
    return _container.get_pipeline()


async def get_owner_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Authenticated user id, forwarded by the upstream auth layer."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id.strip()


def _to_http_exception(e: PatraSaarError) -> HTTPException:
    """Map pipeline errors onto HTTP status codes."""
    if isinstance(e, DocumentNotFoundError):
        return HTTPException(status_code=404, detail="Document not found")
    if isinstance(e, UnsupportedFormatError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, NoProviderConfiguredError):
        return HTTPException(status_code=503, detail="No language model provider is configured")
    if isinstance(e, GenerationError):
        if e.timed_out:
            return HTTPException(status_code=504, detail="Answer generation timed out")
        return HTTPException(status_code=502, detail="Answer generation failed")
    if isinstance(e, (NotConfiguredError, QueryFailedError)):
        return HTTPException(status_code=503, detail="Search backend unavailable")
    return HTTPException(status_code=500, detail="Failed to process request")


def _document_info(record: DocumentRecord) -> dict:
    data = record.to_dict()
    return {key: data[key] for key in DocumentInfo.model_fields if key in data}


def _run_ingestion(
    pipeline: RAGPipeline,
    document_id: str,
    owner_id: str,
    content: bytes,
    file_type: str,
    filename: str,
) -> None:
    """Background task: ingestion marks the document completed or failed itself."""
    result = pipeline.ingest(document_id, owner_id, content, file_type, filename)
    if result.status == "failed":
        logger.error(f"Background ingestion failed for {document_id}: {result.error}")


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/api/v1/health", response_model=HealthResponse)
async def health_check(pipeline: RAGPipeline = Depends(get_pipeline)):
    """Health check endpoint."""
    return HealthResponse(
        status="ok",
        version=__version__,
        embedding_model=pipeline.embeddings.model_id,
        vector_backend=pipeline.settings.vector_backend,
        metadata_backend=pipeline.settings.metadata_backend,
        llm_configured=getattr(pipeline.generator, "configured", True),
    )


@app.post("/api/v1/documents/upload", response_model=UploadResponse)
def upload_document(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    owner_id: str = Depends(get_owner_id),
    pipeline: RAGPipeline = Depends(get_pipeline),
):
    """Upload a PDF, DOCX or TXT document; ingestion runs in the background."""
    filename = file.filename or "document"
    try:
        file_type = normalize_file_type(Path(filename).suffix or (file.content_type or ""))
    except UnsupportedFormatError:
        try:
            file_type = normalize_file_type(file.content_type or "")
        except UnsupportedFormatError:
            raise HTTPException(
                status_code=400,
                detail="Unsupported file type. Please upload PDF, DOCX, or TXT files.",
            )

    content = file.file.read()
    max_bytes = pipeline.settings.max_upload_bytes
    if len(content) > max_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File size exceeds {max_bytes // (1024 * 1024)}MB limit",
        )
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")

    try:
        record = pipeline.submit_document(owner_id, content, filename, file_type)
    except PatraSaarError as e:
        logger.error(f"Upload failed for {filename}: {e}")
        raise _to_http_exception(e) from e

    background_tasks.add_task(
        _run_ingestion, pipeline, record.id, owner_id, content, file_type, filename,
    )

    return UploadResponse(
        id=record.id,
        title=record.title,
        status="processing",
        message="Document uploaded successfully. Processing will begin shortly.",
    )


@app.get("/api/v1/documents", response_model=DocumentListResponse)
def list_documents(
    status: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    owner_id: str = Depends(get_owner_id),
    pipeline: RAGPipeline = Depends(get_pipeline),
):
    """List the caller's documents, newest first."""
    if status is not None and status not in DOCUMENT_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status: {status}")
    try:
        records, total = pipeline.metadata.list_documents(
            owner_id, status=status, limit=limit, offset=offset,
        )
    except PatraSaarError as e:
        raise _to_http_exception(e) from e

    return DocumentListResponse(
        documents=[DocumentInfo(**_document_info(r)) for r in records],
        total=total,
        limit=limit,
        offset=offset,
    )


@app.get("/api/v1/documents/{document_id}", response_model=DocumentDetail)
def get_document(
    document_id: str,
    owner_id: str = Depends(get_owner_id),
    pipeline: RAGPipeline = Depends(get_pipeline),
):
    """Document metadata with its chunks."""
    try:
        record = pipeline.metadata.get_document(document_id, owner_id=owner_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Document not found")
        chunks = pipeline.metadata.list_chunks(document_id)
    except PatraSaarError as e:
        raise _to_http_exception(e) from e

    return DocumentDetail(
        **_document_info(record),
        chunks=[
            ChunkInfo(
                id=c.id,
                chunk_index=c.chunk_index,
                content=c.content,
                section=c.section,
                clause_number=c.clause_number,
                start_char=c.start_char,
                end_char=c.end_char,
                token_count=c.token_count,
            )
            for c in chunks
        ],
    )


@app.delete("/api/v1/documents/{document_id}")
def delete_document(
    document_id: str,
    owner_id: str = Depends(get_owner_id),
    pipeline: RAGPipeline = Depends(get_pipeline),
):
    """Delete a document, its chunks, vectors and stored file."""
    try:
        pipeline.delete_document(document_id, owner_id)
    except PatraSaarError as e:
        raise _to_http_exception(e) from e
    return {"status": "deleted", "document_id": document_id}


@app.post("/api/v1/query", response_model=QueryResponse)
def query_documents(
    request: QueryRequest,
    owner_id: str = Depends(get_owner_id),
    pipeline: RAGPipeline = Depends(get_pipeline),
):
    """Answer a question from the caller's documents."""
    question = request.query.strip()
    if not question:
        raise HTTPException(status_code=400, detail="Query must not be empty")
    if len(question) > pipeline.settings.max_question_chars:
        raise HTTPException(status_code=400, detail="Query is too long")

    try:
        if request.document_id:
            document = pipeline.metadata.get_document(request.document_id, owner_id=owner_id)
            if document is None:
                raise HTTPException(status_code=404, detail="Document not found")
            if document.status != "completed":
                raise HTTPException(status_code=400, detail="Document is not processed yet")

        result = pipeline.query(
            owner_id,
            question,
            document_id=request.document_id,
            top_k=request.top_k,
            timeout=pipeline.settings.llm_timeout_seconds,
        )
    except PatraSaarError as e:
        logger.error(f"Query failed for {owner_id}: {type(e).__name__}: {e}")
        raise _to_http_exception(e) from e

    return QueryResponse(
        query_id=result.query_id,
        answer=result.answer,
        citations=[CitationInfo(**c.to_dict()) for c in result.citations],
        confidence=result.confidence,
        tokens_used=result.tokens_used,
        processing_time_ms=result.processing_time_ms,
        disclaimer=result.disclaimer,
    )


@app.post("/api/v1/queries/{query_id}/feedback")
def submit_feedback(
    query_id: str,
    request: FeedbackRequest,
    owner_id: str = Depends(get_owner_id),
    pipeline: RAGPipeline = Depends(get_pipeline),
):
    """Mark an answer helpful or not helpful."""
    try:
        updated = pipeline.record_feedback(query_id, owner_id, request.feedback)
    except PatraSaarError as e:
        raise _to_http_exception(e) from e
    if not updated:
        raise HTTPException(status_code=404, detail="Query not found")
    return {"status": "ok", "query_id": query_id, "feedback": request.feedback}


@app.get("/api/v1/usage", response_model=UsageResponse)
def get_usage(
    owner_id: str = Depends(get_owner_id),
    pipeline: RAGPipeline = Depends(get_pipeline),
):
    """Uploads and queries in the current calendar month."""
    now = datetime.now(timezone.utc)
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    try:
        documents = pipeline.metadata.count_usage(owner_id, "document_upload", since=month_start)
        queries = pipeline.metadata.count_usage(owner_id, "query", since=month_start)
    except PatraSaarError as e:
        raise _to_http_exception(e) from e
    return UsageResponse(
        period=now.strftime("%Y-%m"),
        documents_uploaded=documents,
        queries=queries,
    )


@app.get("/api/v1/metrics")
async def get_metrics(pipeline: RAGPipeline = Depends(get_pipeline)):
    """Aggregated query, ingestion and fallback metrics."""
    data = pipeline.metrics.get_metrics_dict()
    data["uptime_seconds"] = int(pipeline.metrics.get_uptime().total_seconds())
    return data
