from typing import Optional

from core.ids import IdGenerator
from .models import TocTree
from .pdf_processor import extract_text_spans
from .heading_extractor import extract_toc

def extract_outline(pdf_path: str, id_gen: Optional[IdGenerator] = None) -> TocTree:
    """
    Full pipeline: read the text layer, then filter, level, score and nest
    the heading candidates.
    """
    spans = extract_text_spans(pdf_path)
    return extract_toc(spans, id_gen=id_gen)
