"""
Embedding Service for PatraSaar

Every provider maps text to a fixed-length, unit-normalized vector and
exposes the same contract: ``embed``, ``embed_batch``, ``dimensions`` and
``model_id`` (the identity of the embedding space; query and corpus vectors
must come from the same one).

Architecture:
    HashEmbeddingService  -- offline SimHash-style bag of words (default)
    BaseEmbeddingService  -- shared caching, batching, normalization
        CohereEmbeddingService  -- Cohere embed-english-v3.0
        VoyageEmbeddingService  -- Voyage AI voyage-law-2
    LocalEmbeddingService -- local sentence-transformers
"""

import os
import re
import json
import hashlib
import logging
from typing import Optional, Union
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from .errors import EmbeddingDimensionMismatchError, NotConfiguredError, QueryFailedError

logger = logging.getLogger(__name__)


def _unit(vector) -> list[float]:
    """L2-normalize; the zero vector stays zero."""
    arr = np.asarray(vector, dtype=np.float64)
    norm = np.linalg.norm(arr)
    if norm > 0:
        arr = arr / norm
    return arr.tolist()


@dataclass
class EmbeddingConfig:
    """Configuration for embedding service."""
    provider: str = "hash"  # "hash", "voyage", "cohere" or "local"
    model: str = "hash-simhash-v1"
    dimensions: int = 384
    batch_size: int = 128  # Voyage supports up to 128
    max_tokens_per_batch: int = 100000  # Conservative limit (Voyage max: 120K)
    chars_per_token: float = 4.0
    cache_dir: Optional[str] = None
    use_cache: bool = True
    api_key: Optional[str] = None  # None = read the provider's env var


# =============================================================================
# Offline hash embeddings
# =============================================================================

def string_hash(text: str) -> int:
    """djb2 with xor, kept in signed 32-bit range."""
    h = 5381
    for ch in text:
        h = (((h << 5) + h) ^ ord(ch)) & 0xFFFFFFFF
    return h - 0x100000000 if h & 0x80000000 else h


class HashEmbeddingService:
    """
    Deterministic bag-of-words embeddings with no external dependency.

    Each unique word is hashed three times (salted) into the vector, weighted
    by term frequency and signed by the hash; adjacent-word bigrams add a
    smaller unsigned weight. Lexical only: it ranks passages that share
    words with the question, which is enough for local runs and tests.
    """

    SALTS = 3
    BIGRAM_WEIGHT = 0.5

    def __init__(self, dimensions: int = 384):
        if dimensions <= 0:
            raise ValueError("dimensions must be positive")
        self._dimensions = dimensions

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def model_id(self) -> str:
        return f"hash-simhash-v1:{self._dimensions}"

    def embed(self, text: str) -> list[float]:
        vector = np.zeros(self._dimensions, dtype=np.float64)
        normalized = re.sub(r"[^\w\s]|_", "", text.lower())
        words = normalized.split()
        if not words:
            return vector.tolist()

        total = len(words)
        freqs = {}
        for word in words:
            freqs[word] = freqs.get(word, 0) + 1

        for word, freq in freqs.items():
            tf = freq / total
            for salt in range(self.SALTS):
                h = string_hash(f"{word}{salt}")
                sign = 1.0 if h > 0 else -1.0
                vector[abs(h) % self._dimensions] += sign * tf

        for first, second in zip(words, words[1:]):
            h = string_hash(f"{first}_{second}")
            vector[abs(h) % self._dimensions] += self.BIGRAM_WEIGHT / total

        return _unit(vector)

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [self.embed(text) for text in texts]


# =============================================================================
# API providers
# =============================================================================

class BaseEmbeddingService:
    """
    Base class for API-based embedding services.

    Provides shared functionality:
    - Batched embedding with progress logging
    - Memory and file-based caching
    - Unit normalization and dimension checks on every returned vector

    Subclasses implement ``_init_client()`` and set the class attributes below.
    """

    _provider_name: str = "Base"
    _env_var_name: str = ""
    _doc_input_type: str = "document"
    _query_input_type: str = "query"

    def __init__(self, config: Optional[EmbeddingConfig] = None):
        self.config = config or EmbeddingConfig()
        self._client = None
        self._cache = {}

        if self.config.cache_dir:
            self._cache_path = Path(self.config.cache_dir)
            self._cache_path.mkdir(parents=True, exist_ok=True)
        else:
            self._cache_path = None

        self._init_client()

    def _init_client(self):
        """Initialize the provider-specific API client. Must be overridden by subclasses."""
        raise NotImplementedError("Subclasses must implement _init_client()")

    def _api_key(self) -> Optional[str]:
        return self.config.api_key or os.getenv(self._env_var_name)

    @property
    def dimensions(self) -> int:
        return self.config.dimensions

    @property
    def model_id(self) -> str:
        return f"{self.config.provider}:{self.config.model}:{self.config.dimensions}"

    def _require_client(self):
        if not self._client:
            raise NotConfiguredError(
                f"{self._provider_name} client not initialized. "
                f"Check {self._env_var_name}."
            )

    def _create_batches(self, texts: list[str]) -> list[list[str]]:
        """Split texts into batches respecting both item count and token limits."""
        batches = []
        current_batch = []
        current_tokens = 0
        cpt = self.config.chars_per_token

        for text in texts:
            est_tokens = len(text) / cpt
            if current_batch and (
                len(current_batch) >= self.config.batch_size
                or current_tokens + est_tokens > self.config.max_tokens_per_batch
            ):
                batches.append(current_batch)
                current_batch = []
                current_tokens = 0
            current_batch.append(text)
            current_tokens += est_tokens

        if current_batch:
            batches.append(current_batch)

        return batches

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed document chunks, in order."""
        if not texts:
            return []
        self._require_client()

        batches = self._create_batches(texts)
        logger.info(
            f"Embedding {len(texts)} documents in {len(batches)} batches"
            f" with {self._provider_name}"
        )

        embeddings = []
        for batch_idx, batch in enumerate(batches):
            embeddings.extend(self._embed_batch(batch, input_type=self._doc_input_type))
            if (batch_idx + 1) % 10 == 0:
                logger.info(f"Processed batch {batch_idx + 1}/{len(batches)}")

        return embeddings

    def embed(self, text: str) -> list[float]:
        """Embed a search query (provider's query input type)."""
        self._require_client()
        result = self._embed_batch([text], input_type=self._query_input_type)
        return result[0]

    def _embed_batch(self, texts: list[str], input_type: str) -> list[list[float]]:
        """Embed a batch of texts, serving what it can from cache."""
        results = []
        uncached_texts = []
        uncached_indices = []

        for i, text in enumerate(texts):
            cached = self._get_cached(self._get_cache_key(text, input_type))
            if cached is not None:
                results.append((i, cached))
            else:
                uncached_texts.append(text)
                uncached_indices.append(i)

        if uncached_texts:
            try:
                response = self._client.embed(
                    texts=uncached_texts,
                    model=self.config.model,
                    input_type=input_type,
                )
            except Exception as e:
                logger.error(f"{self._provider_name} embedding failed: {e}")
                raise QueryFailedError(f"{self._provider_name} embedding failed: {e}") from e

            for idx, embedding in zip(uncached_indices, response.embeddings):
                if len(embedding) != self.config.dimensions:
                    raise EmbeddingDimensionMismatchError(self.config.dimensions, len(embedding))
                vector = _unit(embedding)
                self._set_cached(self._get_cache_key(texts[idx], input_type), vector)
                results.append((idx, vector))

        results.sort(key=lambda x: x[0])
        return [emb for _, emb in results]

    def _get_cache_key(self, text: str, input_type: str) -> str:
        content = f"{self.config.model}:{input_type}:{text}"
        return hashlib.sha256(content.encode()).hexdigest()[:32]

    def _get_cached(self, key: str) -> Optional[list[float]]:
        if not self.config.use_cache:
            return None

        if key in self._cache:
            return self._cache[key]

        if self._cache_path:
            cache_file = self._cache_path / f"{key}.json"
            if cache_file.exists():
                try:
                    with open(cache_file) as f:
                        embedding = json.load(f)
                        self._cache[key] = embedding
                        return embedding
                except (OSError, ValueError) as e:
                    logger.debug(f"Failed to read embedding cache file {cache_file}: {e}")

        return None

    def _set_cached(self, key: str, embedding: list[float]) -> None:
        if not self.config.use_cache:
            return

        self._cache[key] = embedding

        if self._cache_path:
            cache_file = self._cache_path / f"{key}.json"
            try:
                with open(cache_file, 'w') as f:
                    json.dump(embedding, f)
            except OSError as e:
                logger.warning(f"Failed to cache embedding: {e}")


class CohereEmbeddingService(BaseEmbeddingService):
    """Embeddings from Cohere's embed-v3 model (1024 dimensions)."""

    _provider_name = "Cohere"
    _env_var_name = "COHERE_API_KEY"
    _doc_input_type = "search_document"
    _query_input_type = "search_query"

    def _init_client(self):
        api_key = self._api_key()
        if not api_key:
            logger.warning(
                "COHERE_API_KEY not found. Embeddings will fail. "
                "Set the environment variable or use a different provider."
            )
            return

        import cohere
        self._client = cohere.Client(api_key)
        logger.info(f"Cohere client initialized with model {self.config.model}")


class VoyageEmbeddingService(BaseEmbeddingService):
    """
    Embedding service using Voyage AI's voyage-law-2 model.

    voyage-law-2 provides:
    - 1024-dimensional embeddings
    - Better retrieval on legal benchmarks than general-purpose models
    - Different input types for documents vs queries
    """

    _provider_name = "Voyage AI"
    _env_var_name = "VOYAGE_API_KEY"
    _doc_input_type = "document"
    _query_input_type = "query"

    def _init_client(self):
        api_key = self._api_key()
        if not api_key:
            logger.warning(
                "VOYAGE_API_KEY not found. Embeddings will fail. "
                "Get your API key at https://dash.voyageai.com/"
            )
            return

        import voyageai
        self._client = voyageai.Client(api_key=api_key)
        logger.info(f"Voyage AI client initialized with model {self.config.model}")


class LocalEmbeddingService:
    """
    Embedding service using a local sentence-transformers model.

    No API key and no network after the first model download.
    """

    def __init__(self, model_name: str = "BAAI/bge-m3"):
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as e:
            raise NotConfiguredError(
                "sentence-transformers not installed. "
                "Run: pip install sentence-transformers"
            ) from e
        self._model_name = model_name
        self._model = SentenceTransformer(model_name)
        self._dimensions = self._model.get_sentence_embedding_dimension()
        logger.info(f"Local embedding model loaded: {model_name}")

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def model_id(self) -> str:
        return f"local:{self._model_name}:{self._dimensions}"

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        embeddings = self._model.encode(texts, normalize_embeddings=True)
        return embeddings.tolist()

    def embed(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]


EmbeddingProvider = Union[
    HashEmbeddingService, VoyageEmbeddingService, CohereEmbeddingService, LocalEmbeddingService
]


def get_embedding_service(
    provider: str = "hash",
    model: Optional[str] = None,
    dimensions: Optional[int] = None,
    cache_dir: Optional[str] = None,
) -> EmbeddingProvider:
    """
    Factory function to get the embedding service for a provider name.

    Args:
        provider: "hash" (offline default), "voyage", "cohere" or "local"
        model: Model override for the API/local providers
        dimensions: Vector length (hash provider, and the expected API output)
        cache_dir: Optional on-disk embedding cache for API providers

    Returns:
        Configured embedding service
    """
    if provider == "voyage":
        config = EmbeddingConfig(
            provider="voyage",
            model=model or "voyage-law-2",
            dimensions=dimensions or 1024,
            batch_size=128,
            chars_per_token=2.0,  # Voyage tokenizer is more aggressive than LLM tokenizers
            cache_dir=cache_dir,
        )
        return VoyageEmbeddingService(config)

    if provider == "cohere":
        config = EmbeddingConfig(
            provider="cohere",
            model=model or "embed-english-v3.0",
            dimensions=dimensions or 1024,
            batch_size=96,
            cache_dir=cache_dir,
        )
        return CohereEmbeddingService(config)

    if provider == "local":
        return LocalEmbeddingService(model or "BAAI/bge-m3")

    return HashEmbeddingService(dimensions or 384)


# CLI for testing
if __name__ == "__main__":
    import sys
    from dotenv import load_dotenv

    load_dotenv()
    logging.basicConfig(level=logging.INFO)

    provider = os.getenv("EMBEDDING_PROVIDER", "hash")
    print(f"Using embedding provider: {provider}")

    service = get_embedding_service(provider=provider)

    if len(sys.argv) > 1:
        query = " ".join(sys.argv[1:])
    else:
        query = "What are the termination clauses in this contract?"

    print(f"Query: {query}")
    embedding = service.embed(query)
    print(f"Embedding space: {service.model_id}")
    print(f"Embedding dimensions: {len(embedding)}")
    print(f"First 10 values: {embedding[:10]}")
