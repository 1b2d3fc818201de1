"""
Citation Extraction and Context Assembly

Turns search results into the numbered context block sent to the model and
into the citations returned with the answer. Both keep search order, so
``[Source N]`` in the answer refers to the N-th citation.
"""

import logging
from typing import Optional
from dataclasses import dataclass

from .vector_store import SearchResult

logger = logging.getLogger(__name__)

CONTEXT_SEPARATOR = "\n\n---\n\n"


@dataclass
class Citation:
    """A citation derived from one search result."""
    source: str               # document id
    content: str              # preview, ellipsis-suffixed when truncated
    relevance_score: float
    section: Optional[str] = None
    chunk_id: Optional[str] = None
    chunk_index: Optional[int] = None
    document_title: Optional[str] = None

    def short_format(self) -> str:
        """Short inline citation format."""
        parts = [self.document_title or self.source]
        if self.section:
            parts.append(self.section)
        return f"[{', '.join(parts)}]"

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "section": self.section,
            "content": self.content,
            "relevance_score": self.relevance_score,
            "chunk_id": self.chunk_id,
            "chunk_index": self.chunk_index,
            "document_title": self.document_title,
            "short_citation": self.short_format(),
        }


def preview(content: str, limit: int = 200) -> str:
    """First ``limit`` characters, with "..." appended when cut."""
    if len(content) <= limit:
        return content
    return content[:limit] + "..."


def build_context(results: list[SearchResult]) -> str:
    """
    Format results as numbered source blocks.

    Example:
        [Source 1 (Section 1: Payment)]:
        Section 1: Payment is due within 30 days.

        ---

        [Source 2]:
        ...
    """
    blocks = []
    for i, result in enumerate(results, start=1):
        section = result.payload.get("section")
        label = f"Source {i} ({section})" if section else f"Source {i}"
        blocks.append(f"[{label}]:\n{result.content}")
    return CONTEXT_SEPARATOR.join(blocks)


class CitationExtractor:
    """Extracts citations from search results, one per result, in order."""

    def __init__(self, preview_chars: int = 200, document_titles: Optional[dict] = None):
        self._preview_chars = preview_chars
        self._document_titles = document_titles or {}

    def extract(
        self,
        results: list[SearchResult],
        document_titles: Optional[dict] = None,
    ) -> list[Citation]:
        """
        Args:
            results: Search results, best first
            document_titles: Optional mapping of document_id to title

        Returns:
            Citations in the same order as ``results``
        """
        titles = document_titles or self._document_titles
        citations = []
        for result in results:
            document_id = str(result.payload.get("documentId", ""))
            citations.append(Citation(
                source=document_id,
                content=preview(result.content, self._preview_chars),
                relevance_score=result.score,
                section=result.payload.get("section"),
                chunk_id=result.id,
                chunk_index=result.payload.get("chunkIndex"),
                document_title=titles.get(document_id),
            ))
        return citations


# CLI for testing
if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    result = SearchResult(
        id="chunk-123",
        content="The party may terminate this agreement upon 30 days written notice...",
        score=0.89,
        payload={
            "documentId": "doc-456",
            "section": "Section 8: Termination",
            "chunkIndex": 7,
        },
    )

    extractor = CitationExtractor(document_titles={"doc-456": "Software License Agreement"})
    for citation in extractor.extract([result]):
        print(f"Short citation: {citation.short_format()}")
        print(f"Preview: {citation.content}")
    print(build_context([result]))
