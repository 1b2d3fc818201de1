"""
Text Extractor - Turns uploaded document bytes into plain text

Uses PyMuPDF4LLM for PDFs (markdown output, then stripped to text) and
python-docx for Word documents. Plain text is decoded directly.

When the structured parser fails on a damaged file, a degraded scan pulls
printable text runs straight out of the byte stream before giving up.
"""

import io
import re
import html
import logging
from dataclasses import dataclass, field
from typing import Optional

from .errors import ExtractionError, UnsupportedFormatError

logger = logging.getLogger(__name__)


# Canonical type -> accepted tags (extensions and MIME types)
FILE_TYPE_ALIASES = {
    "pdf": ("pdf", "application/pdf"),
    "docx": (
        "docx",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ),
    "txt": ("txt", "text/plain"),
}

# Minimum length of text the degraded scan must recover to count as success
MIN_FALLBACK_CHARS = 50


def normalize_file_type(file_type: str) -> str:
    """
    Map an extension or MIME type to one of ``pdf``, ``docx``, ``txt``.

    Raises:
        UnsupportedFormatError: If the tag is not recognized.
    """
    tag = (file_type or "").strip().lower().lstrip(".")
    for canonical, aliases in FILE_TYPE_ALIASES.items():
        if tag in aliases:
            return canonical
    raise UnsupportedFormatError(file_type)


@dataclass
class ExtractedText:
    """Plain text pulled out of a document, with whatever metadata the format offers."""
    text: str
    page_count: int = 1
    metadata: dict = field(default_factory=dict)
    degraded: bool = False  # True when the fallback byte scan produced the text

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "page_count": self.page_count,
            "metadata": self.metadata,
            "degraded": self.degraded,
        }


class TextExtractor:
    """
    Extracts text from PDF, DOCX and plain-text uploads.

    Stateless: the same bytes always produce the same text.
    """

    def extract(
        self,
        data: bytes,
        file_type: str,
        filename: Optional[str] = None,
    ) -> ExtractedText:
        """
        Extract text from raw document bytes.

        Args:
            data: Raw file content
            file_type: Extension or MIME type (e.g. "pdf", ".PDF", "text/plain")
            filename: Original filename, used as a title fallback

        Returns:
            ExtractedText with text, page count and metadata

        Raises:
            UnsupportedFormatError: Unknown file type
            ExtractionError: Parser and degraded scan both failed
        """
        kind = normalize_file_type(file_type)
        logger.info(f"Extracting text from {filename or 'upload'} ({kind}, {len(data)} bytes)")

        if kind == "txt":
            return self._extract_plain_text(data, filename)

        try:
            if kind == "pdf":
                return self._extract_pdf(data, filename)
            return self._extract_docx(data, filename)
        except Exception as e:
            logger.warning(f"{kind.upper()} parser failed for {filename or 'upload'}, scanning raw bytes: {e}")
            recovered = self._scan_printable_runs(data)
            if len(recovered) > MIN_FALLBACK_CHARS:
                logger.info(f"  Degraded scan recovered {len(recovered)} chars")
                return ExtractedText(
                    text=recovered,
                    page_count=1,
                    metadata={"title": filename} if filename else {},
                    degraded=True,
                )
            raise ExtractionError(
                f"Could not extract text from {kind.upper()} document: {e}"
            ) from e

    def _extract_plain_text(self, data: bytes, filename: Optional[str]) -> ExtractedText:
        text = data.decode("utf-8-sig", errors="replace")
        return ExtractedText(
            text=text,
            page_count=1,
            metadata={"title": filename} if filename else {},
        )

    def _extract_pdf(self, data: bytes, filename: Optional[str]) -> ExtractedText:
        """Extract a PDF through PyMuPDF4LLM, keeping page count and document info."""
        import fitz  # PyMuPDF
        import pymupdf4llm

        with fitz.open(stream=data, filetype="pdf") as doc:
            page_count = len(doc)
            info = doc.metadata or {}
            markdown = pymupdf4llm.to_markdown(doc)

        metadata = {}
        title = (info.get("title") or "").strip()
        if title or filename:
            metadata["title"] = title or filename
        if info.get("author"):
            metadata["author"] = info["author"]
        if info.get("creationDate"):
            metadata["creation_date"] = info["creationDate"]

        return ExtractedText(
            text=self._markdown_to_text(markdown),
            page_count=page_count,
            metadata=metadata,
        )

    def _extract_docx(self, data: bytes, filename: Optional[str]) -> ExtractedText:
        """Extract paragraph text from a DOCX file."""
        import docx  # python-docx

        document = docx.Document(io.BytesIO(data))
        text = "\n".join(p.text for p in document.paragraphs)

        metadata = {}
        props = document.core_properties
        if props.title or filename:
            metadata["title"] = props.title or filename
        if props.author:
            metadata["author"] = props.author
        if props.created:
            metadata["creation_date"] = props.created.isoformat()

        return ExtractedText(text=text, page_count=1, metadata=metadata)

    def _markdown_to_text(self, markdown: str) -> str:
        """Convert markdown to plain text."""
        # Images before links to avoid partial match
        text = re.sub(r'^#+\s*', '', markdown, flags=re.MULTILINE)  # Headers
        text = re.sub(r'\*\*([^*]+)\*\*', r'\1', text)  # Bold
        text = re.sub(r'\*([^*]+)\*', r'\1', text)  # Italic
        text = re.sub(r'!\[([^\]]*)\]\([^)]+\)', '', text)  # Images
        text = re.sub(r'\[([^\]]+)\]\([^)]+\)', r'\1', text)  # Links
        text = re.sub(r'`([^`]+)`', r'\1', text)  # Code

        # OCR artifacts
        text = re.sub(r'GLYPH&lt;\d+&gt;', '', text)
        text = re.sub(r'GLYPH<\d+>', '', text)
        text = re.sub(r'<!--.*?-->', '', text)
        text = re.sub(r'\[image\]', '', text, flags=re.IGNORECASE)

        text = html.unescape(text)

        return text.strip()

    def _scan_printable_runs(self, data: bytes) -> str:
        """
        Recover readable text from a byte stream without parsing it.

        PDF string literals ``( ... )`` are tried first since they hold the
        page text in uncompressed PDFs; otherwise runs of three or more
        printable words are collected.
        """
        raw = data.decode("latin-1")

        literals = [
            m.group(1)
            for m in re.finditer(r'\(([^)]+)\)', raw)
            if len(m.group(1)) > 2 and re.fullmatch(r'[\x20-\x7e]+', m.group(1))
        ]
        text = " ".join(literals).strip()
        if len(text) > MIN_FALLBACK_CHARS:
            return text

        runs = re.findall(r'(?:[\x21-\x7e]{2,}[ \t]+){2,}[\x21-\x7e]{2,}', raw)
        return "\n".join(run.strip() for run in runs).strip()
