"""
Error taxonomy for the PatraSaar RAG pipeline.

Every failure that crosses a component boundary is raised as one of these
types so callers can decide between degrading, marking state failed, or
surfacing a user-facing message.
"""

from typing import Optional


class PatraSaarError(Exception):
    """Base class for all pipeline errors."""


class UnsupportedFormatError(PatraSaarError):
    """Raised when a file-type tag is not one the extractor understands."""

    def __init__(self, file_type: str):
        super().__init__(f"Unsupported file type: {file_type}")
        self.file_type = file_type


class ExtractionError(PatraSaarError):
    """Raised when text could not be extracted, even after the fallback scan."""


class EmptyDocumentError(PatraSaarError):
    """Raised when a document yields zero chunks."""


class NotConfiguredError(PatraSaarError):
    """Raised when a backing store or provider is missing or unreachable."""


class QueryFailedError(PatraSaarError):
    """Raised on a transient search or write failure in a configured backend."""


class NoProviderConfiguredError(PatraSaarError):
    """Raised when no generation provider has credentials configured."""


class GenerationError(PatraSaarError):
    """Raised when a configured generation provider fails or times out."""

    def __init__(self, message: str, provider: Optional[str] = None, timed_out: bool = False):
        super().__init__(message)
        self.provider = provider
        self.timed_out = timed_out


class EmbeddingDimensionMismatchError(PatraSaarError):
    """Raised when a vector's length differs from the index dimension."""

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Embedding dimension mismatch: index expects {expected}, got {actual}"
        )
        self.expected = expected
        self.actual = actual


class DocumentNotFoundError(PatraSaarError):
    """Raised when a document id is unknown (or owned by someone else)."""

    def __init__(self, document_id: str):
        super().__init__(f"Document not found: {document_id}")
        self.document_id = document_id
