"""
PatraSaar - plain-language answers about legal documents

This module provides:
- Text extraction from PDF, DOCX and plain-text uploads
- Legal-aware chunking on sections, articles, clauses, rules and orders
- Dense embeddings (deterministic hashing, Cohere, Voyage or local models)
- pgvector search with an in-memory fallback
- Grounded answers with citations, confidence and a not-legal-advice disclaimer
"""

__version__ = "0.1.0"

from .text_extractor import TextExtractor
from .chunker import LegalChunker
from .embeddings import HashEmbeddingService, get_embedding_service
from .vector_store import PgVectorIndex, InMemoryVectorIndex, get_vector_index
from .citation import CitationExtractor
from .pipeline import RAGPipeline, build_pipeline

__all__ = [
    "TextExtractor",
    "LegalChunker",
    "HashEmbeddingService",
    "get_embedding_service",
    "PgVectorIndex",
    "InMemoryVectorIndex",
    "get_vector_index",
    "CitationExtractor",
    "RAGPipeline",
    "build_pipeline",
]
