from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import os

# Import logging components
from core import (
    APILoggingMiddleware, TimeoutMiddleware, api_logger_instance, get_request_id,
    setup_exception_handlers
)
from llm_refinement.config import LLM_BATCH_SIZE
from outline_extractor import config as extractor_config

# Import service routers
from toc_editor.router import router as documents_router
from toc_editor.session import session_store

REQUEST_TIMEOUT_SECONDS = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "150"))

app = FastAPI(
    title="smartTOC",
    version="1.0.0",
    description="Heuristic PDF table-of-contents extraction with optional LLM refinement and an audited editor"
)
app.state.debug = os.getenv("ENVIRONMENT", "development") == "development"

# Add API logging middleware first
app.add_middleware(APILoggingMiddleware)

# Bound every request; refinement of large documents is the slow path
app.add_middleware(TimeoutMiddleware, timeout=REQUEST_TIMEOUT_SECONDS)

# Setup global exception handlers
setup_exception_handlers(app)

# CORS: allow every origin (no credentials)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,   # must be False when allow_origins=["*"]
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(documents_router)


@app.get("/healthz")
async def health_check():
    return {"status": "ok", "sessions": len(session_store.sessions)}


@app.get("/config")
async def get_config(request: Request):
    """Active extraction thresholds; no credentials are ever returned."""
    request_id = getattr(request.state, 'request_id', get_request_id())
    data = {
        "min_heading_size": extractor_config.MIN_HEADING_SIZE,
        "heading_size_delta": extractor_config.HEADING_SIZE_DELTA,
        "min_heading_chars": extractor_config.MIN_HEADING_CHARS,
        "max_heading_chars": extractor_config.MAX_HEADING_CHARS,
        "unknown_confidence_threshold": extractor_config.UNKNOWN_CONFIDENCE_THRESHOLD,
        "llm_batch_size": LLM_BATCH_SIZE,
    }
    api_logger_instance.log_info(data, request_id=request_id, event="config_read")
    return data


@app.get("/")
async def root():
    return {
        "message": "smartTOC API",
        "version": app.version,
        "endpoints": {
            "upload": "POST /documents",
            "generate": "POST /documents/{session_id}/generate",
            "refine": "POST /documents/{session_id}/refine",
            "cancel_refine": "POST /documents/{session_id}/refine/cancel",
            "toc": "GET /documents/{session_id}/toc",
            "audit": "GET /documents/{session_id}/audit",
            "edit": "PATCH /documents/{session_id}/nodes/{node_id}",
            "delete": "DELETE /documents/{session_id}/nodes/{node_id}",
            "confirm": "POST /documents/{session_id}/nodes/{node_id}/confirm",
            "add": "POST /documents/{session_id}/nodes",
            "reorder": "PUT /documents/{session_id}/order",
            "acknowledge": "POST /documents/{session_id}/acknowledge",
            "save": "POST /documents/{session_id}/save",
            "render_page": "GET /documents/{session_id}/pages/{page_number}",
        },
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
