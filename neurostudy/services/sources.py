import base64
import binascii
import io
import logging
import re
from datetime import datetime
from pathlib import Path

import fitz  # PyMuPDF
from pptx import Presentation

from neurostudy.errors import SourceExtractionError
from neurostudy.models import InputType, StudySource

logger = logging.getLogger(__name__)

DOI_RE = re.compile(r"\b(10\.\d{4,9}/[-._;()/:A-Z0-9]+)\b", re.IGNORECASE)
URL_RE = re.compile(r"^(http|https)://[^ \"]+$")

PDF_MIME = "application/pdf"
PPTX_MIME = "application/vnd.openxmlformats-officedocument.presentationml.presentation"


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def looks_like_doi(text: str) -> bool:
    return DOI_RE.search(text) is not None


def looks_like_url(text: str) -> bool:
    stripped = text.strip()
    return bool(URL_RE.match(stripped)) or stripped.startswith("www")


def detect_input_type(mime_type: str | None, filename: str | None = None) -> InputType:
    """Pick an input type for an uploaded file from its MIME type."""
    mime = (mime_type or "").lower()
    ext = Path(filename or "").suffix.lower()
    if "pdf" in mime or ext == ".pdf" or mime == PPTX_MIME or ext == ".pptx":
        return InputType.PDF
    if "video" in mime or "audio" in mime:
        return InputType.VIDEO
    if "image" in mime:
        return InputType.IMAGE
    return InputType.TEXT


# ---------------------------------------------------------------------------
# Source construction
# ---------------------------------------------------------------------------


def text_source(source_type: InputType, text: str, name: str | None = None) -> StudySource:
    """Build a source from pasted text, a DOI or a URL."""
    if not name:
        if source_type == InputType.DOI:
            name = f"DOI: {text[:20]}..."
        elif source_type == InputType.URL:
            name = f"Site: {text[:30]}..."
        else:
            name = f"Text note {datetime.now().strftime('%H:%M:%S')}"
    return StudySource(
        type=source_type, name=name, content=text, mime_type="text/plain"
    )


def file_source(
    filename: str,
    data: bytes,
    mime_type: str | None,
    source_type: InputType | None = None,
) -> StudySource:
    """Build a source from uploaded bytes, stored base64-encoded."""
    source_type = source_type or detect_input_type(mime_type, filename)
    if source_type.is_binary:
        content = base64.b64encode(data).decode("ascii")
    else:
        content = data.decode("utf-8", errors="replace")
    return StudySource(
        type=source_type,
        name=filename,
        content=content,
        mime_type=mime_type or "application/octet-stream",
    )


def decode_content(content: str) -> bytes:
    try:
        return base64.b64decode(content, validate=True)
    except (binascii.Error, ValueError) as e:
        raise SourceExtractionError(f"Source content is not valid base64: {e}") from e


# ---------------------------------------------------------------------------
# Document text extraction
# ---------------------------------------------------------------------------


class DocumentExtractor:
    """Pull plain text out of PDF and PPTX documents for the LLM prompt."""

    @staticmethod
    def extract_text(data: bytes, mime_type: str | None) -> str:
        """Dispatch on MIME type.  Blocking, so call via ``asyncio.to_thread``."""
        mime = (mime_type or "").lower()
        if mime == PPTX_MIME:
            text = DocumentExtractor._pptx_text(data)
        elif "pdf" in mime:
            text = DocumentExtractor._pdf_text(data)
        else:
            raise SourceExtractionError(f"Unsupported document format: {mime_type}")
        if not text.strip():
            raise SourceExtractionError("The document contains no extractable text.")
        return text

    # ------------------------------------------------------------------
    # PDF
    # ------------------------------------------------------------------
    @staticmethod
    def _pdf_text(data: bytes) -> str:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            raise SourceExtractionError(f"Could not open PDF: {e}") from e

        pages: list[str] = []
        try:
            for page_idx in range(len(doc)):
                text = doc[page_idx].get_text().strip()
                if text:
                    pages.append(f"[Page {page_idx + 1}]\n{text}")
        finally:
            doc.close()
        logger.debug("Extracted %d page(s) of PDF text", len(pages))
        return "\n\n".join(pages)

    # ------------------------------------------------------------------
    # PPTX
    # ------------------------------------------------------------------
    @staticmethod
    def _pptx_text(data: bytes) -> str:
        try:
            prs = Presentation(io.BytesIO(data))
        except Exception as e:
            raise SourceExtractionError(f"Could not open presentation: {e}") from e

        slides: list[str] = []
        for slide_idx, slide in enumerate(prs.slides):
            title: str | None = None
            texts: list[str] = []
            for shape in slide.shapes:
                if not shape.has_text_frame:
                    continue
                frame_text = shape.text_frame.text.strip()
                if not frame_text:
                    continue
                # Title placeholder has idx == 0
                if (
                    title is None
                    and shape.is_placeholder
                    and shape.placeholder_format.idx == 0
                ):
                    title = frame_text
                    continue
                texts.append(frame_text)

            if title is None:
                title = texts.pop(0) if texts else f"Slide {slide_idx + 1}"
            body = "\n".join(f"- {t}" for t in texts)
            slides.append(f"[Slide {slide_idx + 1}] {title}\n{body}".rstrip())
        return "\n\n".join(slides)
