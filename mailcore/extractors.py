# mailcore/extractors.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# Turns attachment bytes into plain text an AI agent can read.
#
# Three extractors share one contract: bytes + declared type + filename in,
# ExtractedText out:
#   - text/plain  → the bytes, decoded
#   - PDF         → page-by-page text via pypdf (first 50 pages only)
#   - DOCX        → the text runs (<w:t> elements) of the Word document
#
# Which extractor runs is decided by the MIME type first and, when Gmail
# only says something generic like "application/octet-stream", by the
# filename's extension.
#
# Nothing in here raises on bad input. Every failure comes back as an
# ExtractedText with .error set, so a caller working through several
# attachments can report one failure and keep going.
# ============================================================================

import io
import re
import tempfile
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import docx
from pypdf import PdfReader
from rich.console import Console
from rich.markup import escape

from config.settings import PDF_MAX_PAGES

console = Console(stderr=True)


# ── CONSTANTS ──────────────────────────────────────────────────────────

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
TEXT_MIME = "text/plain"

# The WordprocessingML namespace. Text runs live in <w:t> elements.
WORD_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
_WORD_TEXT_TAG = f"{{{WORD_NS}}}t"

_XML_DECLARATION_RE = re.compile(r'^\s*<\?xml[^>]*\?>')


# ── RESULT TYPE ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ExtractedText:
    """
    The outcome of an extraction: text on success, a reason on failure.

    Exactly one of the two is set; success never means empty text.
    """
    text: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, text: str) -> "ExtractedText":
        return cls(text=text)

    @classmethod
    def failure(cls, reason: str) -> "ExtractedText":
        return cls(error=reason)


# ── DISPATCH ───────────────────────────────────────────────────────────

def _normalize_kind(mime_type: str | None) -> str:
    return (mime_type or "").split(';', 1)[0].strip().lower()


def _extractor_for(mime_type: str | None, filename: str | None):
    """Pick the extractor function by MIME type, then by file extension."""
    by_kind = {
        PDF_MIME: extract_pdf_text,
        DOCX_MIME: extract_docx_text,
        TEXT_MIME: extract_plain_text,
    }
    kind = _normalize_kind(mime_type)
    if kind in by_kind:
        return by_kind[kind]

    lower_name = (filename or "").lower()
    if lower_name.endswith('.pdf'):
        return extract_pdf_text
    if lower_name.endswith('.docx'):
        return extract_docx_text
    if lower_name.endswith('.txt'):
        return extract_plain_text
    return None


def is_extractable_document(mime_type: str | None, filename: str | None) -> bool:
    """True if extract_text() knows how to handle this attachment."""
    return _extractor_for(mime_type, filename) is not None


def extract_text(data: bytes, mime_type: str | None, filename: str | None) -> ExtractedText:
    """
    Extract readable text from attachment bytes.

    Args:
        data:      The decoded attachment bytes.
        mime_type: The type Gmail declared for the part (may be generic).
        filename:  The attachment's filename, used when the type is generic.

    Returns:
        ExtractedText with .text on success or .error on failure.
    """
    extractor = _extractor_for(mime_type, filename)
    if extractor is None:
        described = _normalize_kind(mime_type) or filename or "unknown"
        return ExtractedText.failure(f"unsupported file type: {described}")
    return extractor(data)


# ── PLAIN TEXT ─────────────────────────────────────────────────────────

def extract_plain_text(data: bytes) -> ExtractedText:
    """Plain text needs no parsing, just decoding."""
    if not data:
        return ExtractedText.failure("attachment is empty")
    return ExtractedText.success(data.decode('utf-8', errors='replace'))


# ── PDF ────────────────────────────────────────────────────────────────

def extract_pdf_text(data: bytes, max_pages: int = PDF_MAX_PAGES) -> ExtractedText:
    """
    Extract text from a PDF, one page at a time.

    A page that fails is logged and skipped. Only the first max_pages pages
    are read; a note is appended when the document was longer.
    """
    try:
        reader = PdfReader(io.BytesIO(data))
        num_pages = len(reader.pages)
    except Exception as e:
        return ExtractedText.failure(f"failed to open PDF: {e}")

    pages_to_read = min(num_pages, max_pages)
    chunks = []

    for index in range(pages_to_read):
        try:
            page_text = reader.pages[index].extract_text() or ""
        except Exception as e:
            console.print(f"   [yellow]WARN[/yellow] Skipping PDF page {index + 1}: {escape(str(e))}")
            continue
        if page_text.strip():
            chunks.append(page_text)

    if not chunks:
        return ExtractedText.failure("no text could be extracted from PDF")

    text = "\n\n".join(chunks)
    if num_pages > max_pages:
        text += (
            f"\n\n[Note: PDF has {num_pages} pages total, but only first "
            f"{max_pages} pages were processed for safety]"
        )
    return ExtractedText.success(text)


# ── DOCX ───────────────────────────────────────────────────────────────

def extract_docx_text(data: bytes) -> ExtractedText:
    """
    Extract text from a Word (.docx) document.

    The package is written to a private temporary directory and opened from
    there; the directory is removed however this function exits. The main
    document XML is then reduced to its text runs by strip_docx_xml(). If
    that finds no text, the raw XML is returned as-is.
    """
    try:
        tmp_dir = tempfile.TemporaryDirectory(prefix="docx_extract_")
    except OSError as e:
        return ExtractedText.failure(f"failed to create temp file: {e}")

    with tmp_dir as tmp_name:
        path = Path(tmp_name) / "attachment.docx"
        try:
            path.write_bytes(data)
        except OSError as e:
            return ExtractedText.failure(f"failed to write temp file: {e}")

        try:
            document = docx.Document(str(path))
        except Exception as e:
            return ExtractedText.failure(f"failed to open DOCX: {e}")

        raw_content = document.element.xml

    if not raw_content.strip():
        return ExtractedText.failure("no text could be extracted from DOCX")

    if raw_content.lstrip().startswith('<'):
        plain_text = strip_docx_xml(raw_content)
        if plain_text:
            return ExtractedText.success(plain_text)

    return ExtractedText.success(raw_content)


def strip_docx_xml(xml_content: str) -> str:
    """
    Keep only the text of <w:t> runs from WordprocessingML, whitespace collapsed.

    Works on whole documents and on bare fragments such as
    '<w:t>Hello</w:t><w:t>World</w:t>' (no root, undeclared "w" prefix).
    Parsing stops at the first malformed token; text collected up to that
    point is kept.

    Returns:
        "Hello World"-style text, or "" when no runs were found.
    """
    # Wrap in a synthetic root that declares "w", so fragments parse too.
    # A namespace declared inside the document still takes precedence.
    body = _XML_DECLARATION_RE.sub('', xml_content, count=1)
    wrapped = f'<docx-root xmlns:w="{WORD_NS}">{body}</docx-root>'

    parser = ET.XMLPullParser(events=('end',))
    text_parts = []

    try:
        parser.feed(wrapped)
        parser.close()
    except ET.ParseError:
        pass

    try:
        for _event, element in parser.read_events():
            if element.tag == _WORD_TEXT_TAG:
                text = "".join(element.itertext()).strip()
                if text:
                    text_parts.append(text)
    except ET.ParseError:
        # Events before the broken token are already collected.
        pass

    return " ".join(" ".join(text_parts).split())
