from .models import NodeStatus, TextSpan, HeadingCandidate, TocNode, TocTree
from .pdf_processor import (
    extract_text_spans, coerce_spans, open_document, get_page_count, render_page_png
)
from .heading_extractor import (
    modal_font_size, filter_candidates, assign_levels, score_confidence,
    build_hierarchy, flatten_toc, extract_toc, label_for, status_for
)
from .extractor import extract_outline

__all__ = [
    "NodeStatus", "TextSpan", "HeadingCandidate", "TocNode", "TocTree",
    "extract_text_spans", "coerce_spans", "open_document", "get_page_count", "render_page_png",
    "modal_font_size", "filter_candidates", "assign_levels", "score_confidence",
    "build_hierarchy", "flatten_toc", "extract_toc", "label_for", "status_for",
    "extract_outline",
]
