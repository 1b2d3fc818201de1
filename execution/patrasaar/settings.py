"""
Runtime Settings for the PatraSaar RAG Pipeline

A single dataclass that carries every deployment choice the pipeline needs:
which embedding space to use, where vectors and metadata live, which
generation backends have credentials, and the request-surface limits.

Entry points (API, CLI) call ``load_dotenv()`` and then
``PipelineSettings.from_env()``; the core never reads the environment itself.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


SUPPORTED_EMBEDDING_PROVIDERS = frozenset({"hash", "voyage", "cohere", "local"})
SUPPORTED_VECTOR_BACKENDS = frozenset({"pgvector", "memory"})
SUPPORTED_METADATA_BACKENDS = frozenset({"postgres", "memory"})


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


@dataclass
class PipelineSettings:
    """Deployment configuration for ingestion and query."""
    # Embedding space (query and corpus vectors must share it)
    embedding_provider: str = "hash"
    embedding_model: Optional[str] = None
    embedding_dimensions: int = 384

    # Vector index
    vector_backend: str = "memory"
    database_url: Optional[str] = None
    vector_table: str = "document_vectors"
    vector_memory_fallback: bool = False
    vector_memory_max_points: int = 5000

    # Metadata store
    metadata_backend: str = "memory"

    # Generation
    llm_provider: Optional[str] = None  # None = first configured in preference order
    llm_api_keys: dict[str, str] = field(default_factory=dict)
    llm_timeout_seconds: float = 120.0
    max_answer_tokens: int = 2048
    temperature: float = 0.3

    # Pipeline limits
    summary_char_limit: int = 8000
    default_top_k: int = 5
    citation_preview_chars: int = 200

    # Request surface
    max_upload_bytes: int = 5 * 1024 * 1024
    max_question_chars: int = 2000
    document_storage_dir: str = "document_files"

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        """
        Build settings from environment variables.

        Unknown backend names fall back to the in-memory/offline defaults so a
        misconfigured deployment still starts (and logs what it picked).
        """
        embedding_provider = os.getenv("EMBEDDING_PROVIDER", "hash").strip().lower()
        if embedding_provider not in SUPPORTED_EMBEDDING_PROVIDERS:
            embedding_provider = "hash"

        vector_backend = os.getenv("VECTOR_BACKEND", "memory").strip().lower()
        if vector_backend not in SUPPORTED_VECTOR_BACKENDS:
            vector_backend = "memory"

        metadata_backend = os.getenv("METADATA_BACKEND", "memory").strip().lower()
        if metadata_backend not in SUPPORTED_METADATA_BACKENDS:
            metadata_backend = "memory"

        api_keys = {}
        for provider, env_var in (
            ("groq", "GROQ_API_KEY"),
            ("gemini", "GOOGLE_GEMINI_API_KEY"),
            ("nvidia", "NVIDIA_API_KEY"),
        ):
            key = os.getenv(env_var)
            if key:
                api_keys[provider] = key

        default_dims = 1024 if embedding_provider in ("voyage", "cohere") else 384

        return cls(
            embedding_provider=embedding_provider,
            embedding_model=os.getenv("EMBEDDING_MODEL") or None,
            embedding_dimensions=_env_int("EMBEDDING_DIMENSIONS", default_dims),
            vector_backend=vector_backend,
            database_url=os.getenv("DATABASE_URL") or os.getenv("POSTGRES_URL") or None,
            vector_table=os.getenv("VECTOR_TABLE", "document_vectors"),
            vector_memory_fallback=_env_bool("VECTOR_MEMORY_FALLBACK", False),
            vector_memory_max_points=_env_int("VECTOR_MEMORY_MAX_POINTS", 5000),
            metadata_backend=metadata_backend,
            llm_provider=(os.getenv("LLM_PROVIDER") or None),
            llm_api_keys=api_keys,
            llm_timeout_seconds=_env_float("LLM_TIMEOUT_SECONDS", 120.0),
            max_upload_bytes=_env_int("MAX_UPLOAD_MB", 5) * 1024 * 1024,
            max_question_chars=_env_int("MAX_QUESTION_CHARS", 2000),
            document_storage_dir=os.getenv("DOCUMENT_STORAGE_DIR", "document_files"),
        )
