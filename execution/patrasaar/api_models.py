"""
Pydantic models for the PatraSaar FastAPI backend.
"""

from typing import Optional
from pydantic import BaseModel, Field


class QueryRequest(BaseModel):
    """Request body for RAG query endpoint."""
    query: str = Field(..., min_length=1, max_length=2000)
    document_id: Optional[str] = None
    top_k: int = Field(default=5, ge=1, le=20)


class CitationInfo(BaseModel):
    """Citation in a query response."""
    source: str
    section: Optional[str] = None
    content: str
    relevance_score: float
    chunk_id: Optional[str] = None
    chunk_index: Optional[int] = None
    document_title: Optional[str] = None
    short_citation: str = ""


class QueryResponse(BaseModel):
    """Response body for RAG query endpoint."""
    query_id: Optional[str] = None
    answer: str
    citations: list[CitationInfo]
    confidence: float = Field(..., ge=-1.0, le=1.0)
    tokens_used: int = 0
    processing_time_ms: int = 0
    disclaimer: str


class DocumentInfo(BaseModel):
    """Information about a stored document."""
    id: str
    title: Optional[str] = None
    original_filename: str
    file_type: str
    file_size: int = 0
    document_type: Optional[str] = None
    status: str
    summary: Optional[str] = None
    error: Optional[str] = None
    processed_at: Optional[str] = None
    created_at: Optional[str] = None


class ChunkInfo(BaseModel):
    """A chunk as shown on the document detail view."""
    id: str
    chunk_index: int
    content: str
    section: Optional[str] = None
    clause_number: Optional[str] = None
    start_char: int
    end_char: int
    token_count: int


class DocumentDetail(DocumentInfo):
    """Document with its chunks."""
    chunks: list[ChunkInfo] = []


class DocumentListResponse(BaseModel):
    """Paginated document list."""
    documents: list[DocumentInfo]
    total: int
    limit: int
    offset: int


class UploadResponse(BaseModel):
    """Response body for document upload."""
    id: str
    title: Optional[str] = None
    status: str
    message: str


class FeedbackRequest(BaseModel):
    """Request body for query feedback."""
    feedback: str = Field(..., pattern=r"^(helpful|not_helpful)$")


class UsageResponse(BaseModel):
    """Usage counts for the current calendar month."""
    period: str
    documents_uploaded: int
    queries: int


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    embedding_model: Optional[str] = None
    vector_backend: Optional[str] = None
    metadata_backend: Optional[str] = None
    llm_configured: bool = False
