"""
Pattern and Prompt Definitions for PatraSaar

All regex patterns, normalization tables, and prompt templates in one place.
Modules import from here instead of defining patterns inline.
"""

# =============================================================================
# Heading Rules (ordered, first match wins)
# =============================================================================

# Each entry is (label, pattern). Patterns are matched at the start of a
# heading-candidate unit (a line, or a sentence within a line). Group 1 is the
# clause number carried on the chunk.
HEADING_PATTERNS = [
    ("section", r"(?i)Section\s+(\d+(?:\.\d+)*[A-Za-z]?)\b"),
    ("article", r"(?i)Article\s+(\d+[A-Za-z]?|[IVXLCDM]+)\b"),
    ("clause", r"(?i)Clause\s+(\d+(?:\.\d+)?)\b"),
    ("rule", r"(?i)Rule\s+(\d+)\b"),
    ("order", r"(?i)Order\s+([IVXLCDM]+|\d+)\b"),
    ("numbered", r"(\d+(?:\.\d+)*)\.\s+[A-Z]"),
    ("roman", r"([IVXLCDM]+)\.\s+"),
    ("sub_item", r"\(([a-z]|[ivx]+)\)"),
]

# Markdown/emphasis characters tolerated in front of a heading
HEADING_LEADERS = "#*_> \t"

# =============================================================================
# Sentence Splitting
# =============================================================================

# Abbreviation-unaware: terminal punctuation, whitespace, then a capital letter
SENTENCE_BOUNDARY = r"(?<=[.!?])\s+(?=[A-Z])"

# =============================================================================
# Text Normalization (applied in order)
# =============================================================================

NORMALIZATION_RULES = [
    (r"\bl\b", "I"),                      # OCR: isolated lowercase l is almost always I
    (r"[\u201c\u201d\u201e\u201f\u2033]", '"'),
    (r"[\u2018\u2019\u201a\u201b\u2032]", "'"),
    (r"[\u2013\u2014\u2015\u2212]", "-"),
    (r"\u2026", "..."),
    (r"[ \t\r\f\v\u00a0]*\n\s*", "\n"),   # any whitespace run with a line break
    (r"[ \t\r\f\v\u00a0]+", " "),
]

# =============================================================================
# Answer Text
# =============================================================================

DISCLAIMER = "⚠️ This is for informational purposes only, not legal advice."

NO_RESULTS_ANSWER = (
    "I couldn't find relevant information to answer your question. "
    "Please try rephrasing or ensure you have uploaded relevant documents."
)

# =============================================================================
# LLM Prompts
# =============================================================================

LLM_PROMPTS = {
    "rag_system": f"""You are PatraSaar, an assistant that helps people understand legal documents.
Your role is to explain legal text clearly without providing legal advice.

Guidelines:
1. Always explain legal terms in simple, everyday language.
2. Every substantive claim MUST be traceable to the supplied sources. Cite them inline as [Source N].
3. If the sources do not contain enough information, say so explicitly (for example: "I'm not certain about this based on the provided document.") instead of guessing.
4. Highlight obligations, deadlines, and potential risks clearly.
5. Use short paragraphs and bullet points for readability.
6. Always end with: "{DISCLAIMER}"

Response Format:
- Summary: Brief overview in 2-3 sentences
- Detailed Explanation: Clear breakdown of key points with [Source N] citations
- Key Obligations / Potential Risks: only if present in the sources""",

    "rag_user": """{document_line}Retrieved Legal Context:
{context}

User Question: {question}""",

    "summary_system": (
        "You are a legal document summarizer. Provide a concise 2-3 paragraph summary of "
        "the following legal document, highlighting key points, parties involved, and "
        "important dates or obligations."
    ),

    "summary_user": "Summarize this legal document:\n\n{text}",
}
