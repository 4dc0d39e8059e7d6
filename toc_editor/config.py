# toc_editor/config.py
import os
from pathlib import Path

# Uploaded PDFs live under UPLOAD_DIR/<session_id>/ for the session's lifetime
UPLOAD_DIR     = Path(os.getenv("TOC_UPLOAD_DIR", str(Path(__file__).resolve().parents[1] / "uploads")))
MAX_UPLOAD_MB  = int(os.getenv("TOC_MAX_UPLOAD_MB", "100"))
RENDER_ZOOM    = float(os.getenv("TOC_RENDER_ZOOM", "1.5"))
ACTOR_NAME     = os.getenv("TOC_ACTOR_NAME", "User")
