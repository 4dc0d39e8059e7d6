# outline_extractor/config.py
import os

# ---------- Candidate filter ----------
# Minimum font size (pt) for a line to be considered at all
MIN_HEADING_SIZE   = float(os.getenv("TOC_MIN_HEADING_SIZE", "10"))
# Points above the modal body size that make a non-bold line a candidate
HEADING_SIZE_DELTA = float(os.getenv("TOC_HEADING_SIZE_DELTA", "1.5"))
MIN_HEADING_CHARS  = int(os.getenv("TOC_MIN_HEADING_CHARS", "3"))
MAX_HEADING_CHARS  = int(os.getenv("TOC_MAX_HEADING_CHARS", "200"))

# Body size assumed when a document has no spans at all
DEFAULT_BODY_SIZE  = float(os.getenv("TOC_DEFAULT_BODY_SIZE", "12"))

# ---------- Confidence ----------
UNKNOWN_CONFIDENCE_THRESHOLD = float(os.getenv("TOC_UNKNOWN_THRESHOLD", "0.4"))
# A size delta this large (pt) saturates confidence at 1.0
CONFIDENCE_SATURATION_DELTA  = float(os.getenv("TOC_CONFIDENCE_SATURATION", "8"))
BOLD_BONUS                   = float(os.getenv("TOC_BOLD_BONUS", "0.2"))
UNKNOWN_PREFIX               = os.getenv("TOC_UNKNOWN_PREFIX", "Unknown: ")
