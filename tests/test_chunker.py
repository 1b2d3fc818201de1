"""
Tests for execution/patrasaar/chunker.py

Covers: text normalization, token estimation, heading detection,
        section chunking, preamble handling, sentence splitting with
        overlap, and the sliding-window fallback.
"""

import pytest

from tests.conftest import SAMPLE_NOTICE


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

class TestNormalizeText:

    def test_folds_typography_and_whitespace(self):
        from execution.patrasaar.chunker import normalize_text
        raw = "l agree “fully” — see…  now\n\n\n  next"
        assert normalize_text(raw) == 'I agree "fully" - see... now\nnext'

    def test_single_quotes(self):
        from execution.patrasaar.chunker import normalize_text
        assert normalize_text("the tenant’s deposit") == "the tenant's deposit"

    def test_isolated_l_only(self):
        from execution.patrasaar.chunker import normalize_text
        assert normalize_text("the lease is valid") == "the lease is valid"

    def test_strips_ends(self):
        from execution.patrasaar.chunker import normalize_text
        assert normalize_text("  \n Section 1. Rent \n ") == "Section 1. Rent"

    def test_idempotent(self, sample_agreement):
        from execution.patrasaar.chunker import normalize_text
        once = normalize_text(sample_agreement)
        assert normalize_text(once) == once


class TestEstimateTokens:

    @pytest.mark.parametrize("text,expected", [("", 0), ("abcd", 1), ("abcde", 2), ("a" * 400, 100)])
    def test_four_chars_per_token(self, text, expected):
        from execution.patrasaar.chunker import estimate_tokens
        assert estimate_tokens(text) == expected


# ---------------------------------------------------------------------------
# Heading detection
# ---------------------------------------------------------------------------

class TestFindHeadings:

    def test_sections(self, chunker, normalized_agreement):
        headings = chunker.find_headings(normalized_agreement)
        assert [h.label for h in headings] == ["section"] * 4
        assert [h.clause_number for h in headings] == ["1", "2", "3", "4"]

    def test_heading_at_sentence_start_within_line(self, chunker):
        text = "Intro text here. Section 5. Payment is due."
        headings = chunker.find_headings(text)
        assert len(headings) == 1
        assert headings[0].offset == text.index("Section 5")
        assert headings[0].clause_number == "5"

    def test_article_roman(self, chunker):
        headings = chunker.find_headings("Article IV\nThe parties agree.")
        assert headings[0].label == "article"
        assert headings[0].clause_number == "IV"

    def test_rule_and_order(self, chunker):
        headings = chunker.find_headings("Order XXI\nRule 3\nThe decree holder may apply.")
        assert [(h.label, h.clause_number) for h in headings] == [("order", "XXI"), ("rule", "3")]

    def test_numbered_and_sub_items(self, chunker):
        headings = chunker.find_headings("2.1. Payment terms\n(a) monthly\n(iv) yearly")
        assert [(h.label, h.clause_number) for h in headings] == [
            ("numbered", "2.1"), ("sub_item", "a"), ("sub_item", "iv"),
        ]

    def test_markdown_leaders_tolerated(self, chunker):
        text = "## Section 3. Fees\nFees are payable."
        headings = chunker.find_headings(text)
        assert headings[0].offset == 0
        assert headings[0].clause_number == "3"

    def test_first_rule_wins(self, chunker):
        # "Section" is tried before the numbered rule
        headings = chunker.find_headings("Section 12. Notices")
        assert headings[0].label == "section"

    def test_case_insensitive_keywords(self, chunker):
        headings = chunker.find_headings("SECTION 7 Indemnity\nclause 2.3 Survival")
        assert [h.label for h in headings] == ["section", "clause"]

    def test_plain_prose_has_no_headings(self, chunker):
        assert chunker.find_headings("The tenant pays rent. The landlord repairs the roof.") == []


# ---------------------------------------------------------------------------
# Chunking
# ---------------------------------------------------------------------------

class TestChunk:

    def test_empty_text(self, chunker):
        assert chunker.chunk("", "doc-1") == []
        assert chunker.chunk("   \n  ", "doc-1") == []

    def test_sections_and_preamble(self, chunker, normalized_agreement):
        chunks = chunker.chunk(normalized_agreement, "doc-1")
        assert len(chunks) == 5

        preamble = chunks[0]
        assert preamble.section is None
        assert preamble.clause_number is None
        assert preamble.content.startswith("RENTAL AGREEMENT")

        assert chunks[1].section == "Section 1. Rent"
        assert chunks[1].clause_number == "1"
        assert chunks[1].heading_type == "section"
        assert chunks[2].section == "Section 2. Security Deposit"

    def test_indices_contiguous(self, chunker, normalized_agreement):
        chunks = chunker.chunk(normalized_agreement, "doc-1")
        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
        assert all(c.document_id == "doc-1" for c in chunks)
        assert len({c.chunk_id for c in chunks}) == len(chunks)

    def test_content_is_exact_slice(self, chunker, normalized_agreement):
        for chunk in chunker.chunk(normalized_agreement, "doc-1"):
            assert chunk.content == normalized_agreement[chunk.start_char:chunk.end_char]
            assert chunk.content == chunk.content.strip()

    def test_chunks_ordered_by_position(self, chunker, normalized_agreement):
        chunks = chunker.chunk(normalized_agreement, "doc-1")
        starts = [c.start_char for c in chunks]
        assert starts == sorted(starts)

    def test_token_count_matches_estimate(self, chunker, normalized_agreement):
        from execution.patrasaar.chunker import estimate_tokens
        for chunk in chunker.chunk(normalized_agreement, "doc-1"):
            assert chunk.token_count == estimate_tokens(chunk.content)

    def test_article_document(self, chunker):
        from execution.patrasaar.chunker import normalize_text
        text = normalize_text(SAMPLE_NOTICE)
        chunks = chunker.chunk(text, "doc-2")
        labelled = [c for c in chunks if c.section]
        assert [c.clause_number for c in labelled] == ["1", "2"]
        assert all(c.heading_type == "article" for c in labelled)

    def test_section_title_capped(self):
        from execution.patrasaar.chunker import LegalChunker, ChunkConfig
        chunker = LegalChunker(ChunkConfig(max_title_chars=20))
        text = "Section 9. " + "Very long heading words " * 10
        chunks = chunker.chunk(text, "doc-1")
        assert len(chunks[0].section) == 20

    def test_to_dict(self, chunker, normalized_agreement):
        data = chunker.chunk(normalized_agreement, "doc-1")[1].to_dict()
        assert data["section"] == "Section 1. Rent"
        assert data["clause_number"] == "1"
        assert set(data) >= {"chunk_id", "document_id", "content", "start_char", "end_char", "token_count"}


class TestSplitting:

    @staticmethod
    def _sentences(n):
        return " ".join(f"The tenant must pay item {i} on time." for i in range(n))

    def test_sliding_window_without_headings(self):
        from execution.patrasaar.chunker import LegalChunker, ChunkConfig
        chunker = LegalChunker(ChunkConfig(max_tokens=20, overlap_words=3))
        text = self._sentences(8)
        chunks = chunker.chunk(text, "doc-1")

        assert len(chunks) > 1
        for chunk in chunks:
            assert chunk.section is None
            assert chunk.token_count <= 20
            assert chunk.content == text[chunk.start_char:chunk.end_char]

    def test_overlap_between_consecutive_chunks(self):
        from execution.patrasaar.chunker import LegalChunker, ChunkConfig
        chunker = LegalChunker(ChunkConfig(max_tokens=20, overlap_words=3))
        text = self._sentences(8)
        chunks = chunker.chunk(text, "doc-1")

        for prev, nxt in zip(chunks, chunks[1:]):
            assert nxt.start_char < prev.end_char
            assert prev.content.split()[-3:] == nxt.content.split()[:3]

    def test_no_overlap_when_disabled(self):
        from execution.patrasaar.chunker import LegalChunker, ChunkConfig
        chunker = LegalChunker(ChunkConfig(max_tokens=20, overlap_words=0))
        text = self._sentences(6)
        chunks = chunker.chunk(text, "doc-1")

        for prev, nxt in zip(chunks, chunks[1:]):
            assert nxt.start_char > prev.end_char
            assert nxt.content.startswith("The tenant")

    def test_oversized_section_keeps_its_heading(self):
        from execution.patrasaar.chunker import LegalChunker, ChunkConfig
        chunker = LegalChunker(ChunkConfig(max_tokens=30, overlap_words=2))
        text = "Section 4. Payment\n" + self._sentences(10)
        chunks = chunker.chunk(text, "doc-1")

        assert len(chunks) > 1
        assert chunks[0].start_char == 0
        assert all(c.section == "Section 4. Payment" for c in chunks)
        assert all(c.clause_number == "4" for c in chunks)

    def test_single_long_sentence_is_not_split(self):
        from execution.patrasaar.chunker import LegalChunker, ChunkConfig
        chunker = LegalChunker(ChunkConfig(max_tokens=5))
        text = "the tenant shall pay the rent and the maintenance charges without any delay"
        chunks = chunker.chunk(text, "doc-1")
        assert len(chunks) == 1
        assert chunks[0].content == text


class TestChunkBoundaries:

    def test_two_sections_in_one_line(self, chunker):
        text = (
            "Section 1: Payment is due within 30 days. "
            "Section 2: Termination requires 30 days notice."
        )
        chunks = chunker.chunk(text, "doc-1")
        assert [c.clause_number for c in chunks] == ["1", "2"]
        assert chunks[0].content == "Section 1: Payment is due within 30 days."

    def test_section_exactly_at_budget(self):
        from execution.patrasaar.chunker import LegalChunker, ChunkConfig
        text = "Section 1. Rent is due. Pay on time now."
        assert len(text) == 40
        chunks = LegalChunker(ChunkConfig(max_tokens=10)).chunk(text, "doc-1")
        assert len(chunks) == 1
        assert chunks[0].token_count == 10

    def test_rechunking_is_deterministic(self, chunker, normalized_agreement):
        first = chunker.chunk(normalized_agreement, "doc-1")
        second = chunker.chunk(normalized_agreement, "doc-1")
        assert [(c.start_char, c.end_char) for c in first] == [(c.start_char, c.end_char) for c in second]
