"""
Legal-Aware Chunker

Splits normalized legal text into retrieval units aligned to the document's
own structure (sections, articles, clauses, numbered and lettered items).

Strategy:
- Scan lines and sentence starts for headings (ordered rules, first match wins)
- One chunk per section when it fits the token budget
- Oversized sections are split on sentence boundaries with a word overlap
- Documents without any heading fall back to a sliding window
"""

import re
import math
import uuid
import logging
from dataclasses import dataclass
from typing import Optional

from .legal_patterns import (
    HEADING_PATTERNS,
    HEADING_LEADERS,
    SENTENCE_BOUNDARY,
    NORMALIZATION_RULES,
)

logger = logging.getLogger(__name__)

_NORMALIZERS = [(re.compile(pattern), repl) for pattern, repl in NORMALIZATION_RULES]


def normalize_text(text: str) -> str:
    """
    Clean extracted text before chunking.

    Fixes the isolated-"l" OCR error, folds typographic quotes, dashes and
    ellipses to ASCII, and collapses whitespace. Line breaks survive (as a
    single newline) because heading detection is line-based.
    """
    for pattern, repl in _NORMALIZERS:
        text = pattern.sub(repl, text)
    return text.strip()


def estimate_tokens(text: str, chars_per_token: int = 4) -> int:
    """Rough token count: one token per four characters, rounded up."""
    return math.ceil(len(text) / chars_per_token)


@dataclass
class Chunk:
    """A contiguous span of normalized document text, ready for embedding."""
    chunk_id: str
    document_id: str
    content: str
    chunk_index: int
    token_count: int
    start_char: int
    end_char: int

    # Structure
    section: Optional[str] = None         # Heading line, None for preamble/window chunks
    clause_number: Optional[str] = None   # "1", "4.2", "IV", "a"
    heading_type: Optional[str] = None    # Rule label that opened the section

    def to_dict(self) -> dict:
        return {
            "chunk_id": self.chunk_id,
            "document_id": self.document_id,
            "content": self.content,
            "chunk_index": self.chunk_index,
            "token_count": self.token_count,
            "start_char": self.start_char,
            "end_char": self.end_char,
            "section": self.section,
            "clause_number": self.clause_number,
            "heading_type": self.heading_type,
        }


@dataclass
class Heading:
    """A heading found in the text, opening a section at ``offset``."""
    offset: int
    label: str
    clause_number: str


@dataclass
class ChunkConfig:
    """Configuration for chunking parameters."""
    # Token budget per chunk
    max_tokens: int = 500

    # Trailing words of the previous chunk repeated at the start of the next
    overlap_words: int = 50

    # Token estimate divisor
    chars_per_token: int = 4

    # Section titles are the heading line, capped
    max_title_chars: int = 100


class LegalChunker:
    """
    Chunks legal text while preserving its section structure.

    Every chunk's content is exactly ``text[start_char:end_char]`` of the
    text passed to :meth:`chunk`.
    """

    def __init__(self, config: Optional[ChunkConfig] = None):
        self.config = config or ChunkConfig()
        self._heading_rules = [(label, re.compile(pattern)) for label, pattern in HEADING_PATTERNS]
        self._sentence_boundary = re.compile(SENTENCE_BOUNDARY)
        self._word = re.compile(r"\S+")

    def chunk(self, text: str, document_id: str) -> list[Chunk]:
        """
        Chunk normalized text into retrieval units.

        Args:
            text: Normalized document text (see :func:`normalize_text`)
            document_id: Parent document identifier

        Returns:
            Chunks ordered by position with contiguous indices from 0.
            Empty or whitespace-only text yields an empty list.
        """
        if not text or not text.strip():
            return []

        headings = self.find_headings(text)
        chunks = []

        if not headings:
            logger.info("No legal headings found, using sliding window")
            for start, end in self._split_span(text, 0, len(text)):
                chunks.append(self._make_chunk(text, document_id, start, end))
        else:
            # Preamble before the first heading
            if text[:headings[0].offset].strip():
                for start, end in self._split_span(text, 0, headings[0].offset):
                    chunks.append(self._make_chunk(text, document_id, start, end))

            for i, heading in enumerate(headings):
                section_end = headings[i + 1].offset if i + 1 < len(headings) else len(text)
                title = self._section_title(text, heading.offset, section_end)
                for start, end in self._split_span(text, heading.offset, section_end):
                    chunks.append(self._make_chunk(
                        text, document_id, start, end,
                        section=title,
                        clause_number=heading.clause_number,
                        heading_type=heading.label,
                    ))

        for index, chunk in enumerate(chunks):
            chunk.chunk_index = index

        logger.info(f"Created {len(chunks)} chunks from {len(headings)} headings")
        return chunks

    def find_headings(self, text: str) -> list[Heading]:
        """Return headings in text order, testing each line and each sentence start."""
        headings = []
        for line in re.finditer(r"[^\n]+", text):
            unit_starts = [line.start()]
            unit_starts.extend(
                m.end() for m in self._sentence_boundary.finditer(text, line.start(), line.end())
            )
            for start in unit_starts:
                heading = self._match_heading(text, start, line.end())
                if heading is not None:
                    headings.append(heading)
        return headings

    def _match_heading(self, text: str, start: int, line_end: int) -> Optional[Heading]:
        pos = start
        while pos < line_end and text[pos] in HEADING_LEADERS:
            pos += 1
        for label, rule in self._heading_rules:
            m = rule.match(text, pos, line_end)
            if m:
                return Heading(offset=start, label=label, clause_number=m.group(1))
        return None

    def _section_title(self, text: str, start: int, end: int) -> str:
        first_line = text[start:end].strip().split("\n", 1)[0]
        return first_line.strip(HEADING_LEADERS)[:self.config.max_title_chars]

    def _split_span(self, text: str, start: int, end: int) -> list[tuple[int, int]]:
        """
        Split ``text[start:end]`` into chunk spans on sentence boundaries.

        Sentences accumulate while the running estimate fits the budget. Each
        new chunk starts with the trailing words of the previous one, unless
        that overlap plus the next sentence would not fit on its own.
        """
        # Trim the span to its non-whitespace extent
        while start < end and text[start].isspace():
            start += 1
        while end > start and text[end - 1].isspace():
            end -= 1
        if start >= end:
            return []

        sentences = []
        sentence_start = start
        for m in self._sentence_boundary.finditer(text, start, end):
            sentences.append((sentence_start, m.start()))
            sentence_start = m.end()
        sentences.append((sentence_start, end))

        spans = []
        current_start, current_end = sentences[0]
        for sentence_start, sentence_end in sentences[1:]:
            if self._tokens(text[current_start:sentence_end]) <= self.config.max_tokens:
                current_end = sentence_end
                continue

            spans.append((current_start, current_end))
            overlap_start = self._overlap_start(text, current_start, current_end)
            if (
                overlap_start < current_end
                and self._tokens(text[overlap_start:sentence_end]) <= self.config.max_tokens
            ):
                current_start = overlap_start
            else:
                current_start = sentence_start
            current_end = sentence_end

        spans.append((current_start, current_end))
        return spans

    def _overlap_start(self, text: str, start: int, end: int) -> int:
        """Offset of the first of the trailing ``overlap_words`` words in ``text[start:end]``."""
        if self.config.overlap_words <= 0:
            return end
        words = [m.start() for m in self._word.finditer(text, start, end)]
        if len(words) <= self.config.overlap_words:
            return start
        return words[-self.config.overlap_words]

    def _make_chunk(
        self,
        text: str,
        document_id: str,
        start: int,
        end: int,
        section: Optional[str] = None,
        clause_number: Optional[str] = None,
        heading_type: Optional[str] = None,
    ) -> Chunk:
        content = text[start:end]
        return Chunk(
            chunk_id=str(uuid.uuid4()),
            document_id=document_id,
            content=content,
            chunk_index=0,  # assigned once all chunks are known
            token_count=self._tokens(content),
            start_char=start,
            end_char=end,
            section=section,
            clause_number=clause_number,
            heading_type=heading_type,
        )

    def _tokens(self, text: str) -> int:
        return estimate_tokens(text, self.config.chars_per_token)
