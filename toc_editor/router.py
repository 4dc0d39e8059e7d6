from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile
from typing import Any, Callable, Dict, List, Optional
import asyncio
import json
import time

from core import api_logger_instance, get_request_id
from core.error_handler import ValidationError
from llm_refinement.config import LlmConfig
from outline_extractor.pdf_processor import coerce_spans, render_page_png
from .config import MAX_UPLOAD_MB, RENDER_ZOOM
from .session import DocumentSession, SessionStore, session_store

router = APIRouter(prefix="/documents", tags=["documents"])


def get_session_store() -> SessionStore:
    return session_store


def _state(session: DocumentSession, **extra: Any) -> Dict[str, Any]:
    return {
        "session": session.to_dict(),
        "toc": session.toc_dict(),
        "audit_log": session.audit_log.to_list(),
        **extra,
    }


def _optional(value: Optional[str]) -> Optional[str]:
    return value if value and value.strip() else None


async def _run_sync(func: Callable[..., Any], *args: Any) -> Any:
    # PyMuPDF work runs in the default thread pool to keep the loop free
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, func, *args)


@router.post("")
async def upload_document(
    request: Request,
    file: UploadFile = File(...),
    store: SessionStore = Depends(get_session_store),
):
    """
    Upload a PDF and open a document session for it.

    Returns:
        Session information including the page count
    """
    start_time = time.time()
    request_id = getattr(request.state, 'request_id', get_request_id())

    if file.content_type not in (None, "", "application/pdf", "application/octet-stream"):
        raise ValidationError(f"Expected a PDF upload, got {file.content_type}")

    content = await file.read()
    if not content:
        raise ValidationError("Uploaded file is empty")
    if len(content) > MAX_UPLOAD_MB * 1024 * 1024:
        raise ValidationError(f"Uploaded file exceeds {MAX_UPLOAD_MB} MB")

    session = await _run_sync(store.create, file.filename or "document.pdf", content)

    api_logger_instance.log_performance(
        request_id=request_id,
        operation="document_upload",
        duration=time.time() - start_time,
        session_id=session.session_id,
        page_count=session.page_count,
        size_bytes=len(content)
    )
    return _state(session)


@router.get("/{session_id}")
async def get_document(session_id: str, store: SessionStore = Depends(get_session_store)):
    return _state(store.get(session_id))


@router.delete("/{session_id}")
async def close_document(session_id: str, store: SessionStore = Depends(get_session_store)):
    store.remove(session_id)
    return {"session_id": session_id, "message": "Document session closed"}


@router.post("/{session_id}/generate")
async def generate_toc(
    request: Request,
    session_id: str,
    spans: Optional[str] = Form(default=None),  # JSON array of span records
    store: SessionStore = Depends(get_session_store),
):
    """
    Run heuristic extraction; replaces the tree and starts a new audit log.

    Without ``spans`` the uploaded PDF's text layer is read. A client that
    already holds positioned text (e.g. from its own viewer) may send it as
    records of text, font_size/fontSize, bold, page and y.
    """
    start_time = time.time()
    request_id = getattr(request.state, 'request_id', get_request_id())
    session = store.get(session_id)

    supplied = None
    if _optional(spans):
        try:
            records = json.loads(spans)
        except json.JSONDecodeError:
            raise ValidationError("spans must be a JSON array of span records")
        if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
            raise ValidationError("spans must be a JSON array of span records")
        supplied = coerce_spans(records)

    async with session.lock:
        await _run_sync(session.generate, supplied)

    api_logger_instance.log_performance(
        request_id=request_id,
        operation="toc_generate",
        duration=time.time() - start_time,
        session_id=session_id,
        entries=session.to_dict()["entries"]
    )
    return _state(session)


@router.post("/{session_id}/refine")
async def refine_toc(
    request: Request,
    session_id: str,
    provider: Optional[str] = Form(default=None),
    api_key: Optional[str] = Form(default=None),
    azure_endpoint: Optional[str] = Form(default=None),
    model: Optional[str] = Form(default=None),
    store: SessionStore = Depends(get_session_store),
):
    """
    Optional LLM pass. Credentials given here stay in the session only;
    without them the session's earlier config, then the environment, is used.
    """
    start_time = time.time()
    request_id = getattr(request.state, 'request_id', get_request_id())
    session = store.get(session_id)

    config = None
    if _optional(api_key):
        config = LlmConfig.from_dict({
            "provider": _optional(provider),
            "api_key": api_key.strip(),
            "azure_endpoint": _optional(azure_endpoint),
            "model": _optional(model),
        })
    elif session.llm_config is None:
        config = LlmConfig.from_env()

    async with session.lock:
        outcome = await session.refine(config)

    api_logger_instance.log_performance(
        request_id=request_id,
        operation="toc_refine",
        duration=time.time() - start_time,
        session_id=session_id,
        updated=outcome.updated,
        removed=outcome.removed
    )
    return _state(session, refinement={
        "updated": outcome.updated,
        "removed": outcome.removed,
        "removed_ids": outcome.removed_ids,
    })


@router.post("/{session_id}/refine/cancel")
async def cancel_refinement(session_id: str, store: SessionStore = Depends(get_session_store)):
    # never takes session.lock: a running refinement is holding it
    cancelled = store.get(session_id).cancel_refinement()
    return {"session_id": session_id, "cancelled": cancelled}


@router.get("/{session_id}/toc")
async def get_toc(session_id: str, store: SessionStore = Depends(get_session_store)):
    session = store.get(session_id)
    return {"session_id": session_id, "toc": session.toc_dict()}


@router.get("/{session_id}/audit")
async def get_audit_log(session_id: str, store: SessionStore = Depends(get_session_store)):
    session = store.get(session_id)
    return {"session_id": session_id, "audit_log": session.audit_log.to_list()}


@router.patch("/{session_id}/nodes/{node_id}")
async def edit_node_label(
    session_id: str,
    node_id: str,
    label: str = Form(...),
    store: SessionStore = Depends(get_session_store),
):
    session = store.get(session_id)
    async with session.lock:
        changed = session.edit_label(node_id, label)
    return _state(session, changed=changed)


@router.delete("/{session_id}/nodes/{node_id}")
async def delete_node(session_id: str, node_id: str, store: SessionStore = Depends(get_session_store)):
    session = store.get(session_id)
    async with session.lock:
        changed = session.delete_node(node_id)
    return _state(session, changed=changed)


@router.post("/{session_id}/nodes/{node_id}/confirm")
async def confirm_node(session_id: str, node_id: str, store: SessionStore = Depends(get_session_store)):
    session = store.get(session_id)
    async with session.lock:
        changed = session.confirm_unknown(node_id)
    return _state(session, changed=changed)


@router.post("/{session_id}/nodes")
async def add_node(
    session_id: str,
    label: str = Form(...),
    page: int = Form(...),
    parent_id: Optional[str] = Form(default=None),
    store: SessionStore = Depends(get_session_store),
):
    session = store.get(session_id)
    async with session.lock:
        node = session.add_node(label, page, _optional(parent_id))
    return _state(session, changed=node is not None, node=node.to_dict() if node else None)


@router.put("/{session_id}/order")
async def reorder_nodes(
    session_id: str,
    child_ids: str = Form(...),  # JSON array of node ids
    parent_id: Optional[str] = Form(default=None),
    store: SessionStore = Depends(get_session_store),
):
    try:
        ids: List[str] = json.loads(child_ids)
    except json.JSONDecodeError:
        raise ValidationError("child_ids must be a JSON array of node ids")
    if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
        raise ValidationError("child_ids must be a JSON array of node ids")

    session = store.get(session_id)
    async with session.lock:
        changed = session.reorder(_optional(parent_id), ids)
    return _state(session, changed=changed)


@router.post("/{session_id}/acknowledge")
async def acknowledge_disclosure(session_id: str, store: SessionStore = Depends(get_session_store)):
    session = store.get(session_id)
    session.acknowledge()
    return {"session_id": session_id, "acknowledged": True}


@router.post("/{session_id}/save")
async def save_toc(session_id: str, store: SessionStore = Depends(get_session_store)):
    session = store.get(session_id)
    async with session.lock:
        session.save()
    return _state(session, message="TOC saved")


@router.get("/{session_id}/pages/{page_number}")
async def render_page(session_id: str, page_number: int, store: SessionStore = Depends(get_session_store)):
    session = store.get(session_id)
    png = await _run_sync(render_page_png, session.pdf_path, page_number, RENDER_ZOOM)
    return Response(content=png, media_type="image/png")
