import re
import logging
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, List, Mapping

import fitz  # PyMuPDF

from core.error_handler import DocumentLoadError
from .models import TextSpan

logger = logging.getLogger(__name__)

BOLD_FONT_RX = re.compile(r"bold|heavy|black", re.IGNORECASE)
# PyMuPDF span flag bit for bold text
BOLD_FLAG = 1 << 4


@contextmanager
def open_document(pdf_path: str) -> Iterator["fitz.Document"]:
    """Open a PDF for reading, turning every load failure into DocumentLoadError."""
    try:
        doc = fitz.open(pdf_path)
    except (RuntimeError, ValueError, OSError) as e:
        raise DocumentLoadError(f"Could not open {pdf_path}: {e}") from e

    try:
        if doc.needs_pass:
            raise DocumentLoadError(f"{pdf_path} is encrypted")
        if not doc.is_pdf:
            raise DocumentLoadError(f"{pdf_path} is not a PDF document")
        yield doc
    finally:
        doc.close()


def _is_bold(spans: List[Mapping[str, Any]]) -> bool:
    return any(
        BOLD_FONT_RX.search(s.get("font", "") or "") or (int(s.get("flags", 0)) & BOLD_FLAG)
        for s in spans
    )


def extract_text_spans(pdf_path: str) -> List[TextSpan]:
    """
    Collect one TextSpan per text line, page by page, top to bottom.
    Text layer only: pages without text contribute nothing (no OCR).
    """
    extracted: List[TextSpan] = []

    with open_document(pdf_path) as doc:
        for page_index in range(doc.page_count):
            page = doc[page_index]
            blocks = page.get_text("dict", sort=True)["blocks"]

            for block in blocks:
                for line in block.get("lines", []):
                    spans = [s for s in line.get("spans", []) if s.get("text", "").strip()]
                    if not spans:
                        continue
                    text = "".join(s["text"] for s in line["spans"]).strip()
                    size = max(float(s["size"]) for s in spans)
                    extracted.append(TextSpan(
                        text=text,
                        # absorb float noise so equal sizes cluster together
                        font_size=round(size, 2),
                        bold=_is_bold(spans),
                        page=page_index + 1,  # 1-based
                        y=float(spans[0].get("origin", line["bbox"][:2])[1]),
                    ))

    logger.debug("Extracted %d spans from %s", len(extracted), pdf_path)
    return extracted


def coerce_spans(records: Iterable[Mapping[str, Any]]) -> List[TextSpan]:
    """
    Build TextSpans from loosely-typed records (JSON payloads, fixtures).
    Records missing a required field or carrying unusable values are skipped.
    """
    spans: List[TextSpan] = []
    for i, r in enumerate(records):
        try:
            text = str(r["text"]).strip()
            size = float(r["font_size"] if "font_size" in r else r["fontSize"])
            page = int(r["page"])
            y = float(r.get("y", 0.0))
            bold = bool(r.get("bold", r.get("is_bold", False)))
        except (KeyError, TypeError, ValueError) as e:
            logger.debug("Skipping malformed span #%d: %s", i, e)
            continue
        if not text or size <= 0 or page < 1:
            logger.debug("Skipping out-of-range span #%d (%r)", i, text)
            continue
        spans.append(TextSpan(text=text, font_size=size, bold=bold, page=page, y=y))
    return spans


def get_page_count(pdf_path: str) -> int:
    with open_document(pdf_path) as doc:
        return doc.page_count


def render_page_png(pdf_path: str, page_number: int, zoom: float = 1.5) -> bytes:
    """Rasterize one 1-based page to PNG bytes."""
    with open_document(pdf_path) as doc:
        if not 1 <= page_number <= doc.page_count:
            raise ValueError(f"Page {page_number} out of range (1..{doc.page_count})")
        pix = doc[page_number - 1].get_pixmap(matrix=fitz.Matrix(zoom, zoom))
        return pix.tobytes("png")
