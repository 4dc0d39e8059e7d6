"""
Document sessions: one loaded PDF, its current TOC tree and its audit log.

A session is the single writer for its tree. Callers running inside an event
loop serialize mutations with ``session.lock``; every mutation that changes
the tree appends exactly one audit event.
"""
from __future__ import annotations

import asyncio
import logging
import shutil
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from core.error_handler import ResourceNotFoundError, ValidationError
from core.ids import IdGenerator, make_id_generator
from llm_refinement.config import LlmConfig
from llm_refinement.merge import MergeOutcome, merge_refinements, refinement_candidates
from llm_refinement.refiner import CallApi, refine_toc_with_llm
from outline_extractor.heading_extractor import extract_toc, flatten_toc
from outline_extractor.models import TextSpan, TocNode, TocTree
from outline_extractor.pdf_processor import extract_text_spans, get_page_count
from .audit_log import AuditEventKind, AuditLog, Clock, append_event, create_audit_log
from .config import ACTOR_NAME, UPLOAD_DIR
from . import tree as toc_tree

logger = logging.getLogger(__name__)


class DocumentSession:
    """Holds the state the UI edits for one uploaded document."""

    def __init__(
        self,
        session_id: str,
        pdf_path: Optional[str],
        file_name: str = "document",
        *,
        node_ids: Optional[IdGenerator] = None,
        event_ids: Optional[IdGenerator] = None,
        clock: Optional[Clock] = None,
        actor: str = ACTOR_NAME,
    ):
        self.session_id = session_id
        self.pdf_path = pdf_path
        self.file_name = file_name
        self.node_ids = node_ids or make_id_generator("node")
        self.event_ids = event_ids or make_id_generator("evt")
        self.clock = clock
        self.actor = actor

        self.tree: TocTree = ()
        self.audit_log: AuditLog = create_audit_log()
        self.acknowledged = False
        self.page_count = 0
        self.llm_config: Optional[LlmConfig] = None

        self.lock = asyncio.Lock()
        self.cancel_event: Optional[asyncio.Event] = None
        self.refine_progress: Tuple[int, int] = (0, 0)
        self.created_at = datetime.now().isoformat()

    # -------------------------------------------------------
    # Internals
    # -------------------------------------------------------

    def _log(self, kind: AuditEventKind, description: str,
             node_id: Optional[str] = None, node_label: Optional[str] = None) -> None:
        self.audit_log = append_event(
            self.audit_log, kind, description, node_id, node_label,
            actor=self.actor, id_gen=self.event_ids, clock=self.clock,
        )

    def _require_node(self, node_id: str) -> Optional[TocNode]:
        node = toc_tree.find_node(self.tree, node_id)
        if node is None:
            # UI may act on a node it already deleted; not an error
            logger.info("Session %s: node %s not found, ignoring", self.session_id, node_id)
        return node

    # -------------------------------------------------------
    # Document lifecycle
    # -------------------------------------------------------

    def load_document(self, pdf_path: str, file_name: Optional[str] = None) -> int:
        """Attach a (new) PDF: validates it, discards the tree and starts a fresh log."""
        page_count = get_page_count(pdf_path)
        self.pdf_path = pdf_path
        self.file_name = file_name or Path(pdf_path).name
        self.page_count = page_count
        self.tree = ()
        self.audit_log = create_audit_log()
        self.acknowledged = False
        logger.info("Session %s: loaded %s (%d pages)", self.session_id, self.file_name, page_count)
        return page_count

    def generate(self, spans: Optional[Sequence[TextSpan]] = None) -> TocTree:
        """
        Rebuild the tree from scratch. A generation run starts a new audit log
        whose first entry is the ``generated`` event.
        """
        if spans is None:
            if not self.pdf_path:
                raise ValidationError("No document loaded")
            spans = extract_text_spans(self.pdf_path)

        start = time.time()
        self.audit_log = create_audit_log()
        self.tree = extract_toc(spans, id_gen=self.node_ids)
        count = len(flatten_toc(self.tree))
        self._log(
            AuditEventKind.GENERATED,
            f'AI generated TOC with {count} entries from "{self.file_name}"',
        )
        logger.info("Session %s: generated %d entries in %.2fs", self.session_id, count, time.time() - start)
        return self.tree

    async def refine(
        self,
        config: Optional[LlmConfig] = None,
        on_progress: Optional[Callable[[int, int], None]] = None,
        *,
        call_api: Optional[CallApi] = None,
    ) -> MergeOutcome:
        """
        Run the LLM pass over the current tree and merge accepted results.

        The session config is used when none is given. Cancellation through
        ``cancel_refinement`` stops before the next batch and merges what
        already came back.
        """
        config = config or self.llm_config
        if config is None:
            raise ValidationError("LLM configuration is required")
        self.llm_config = config

        candidates = refinement_candidates(self.tree)
        self.cancel_event = asyncio.Event()
        self.refine_progress = (0, len(candidates))

        def progress(done: int, total: int) -> None:
            self.refine_progress = (done, total)
            if on_progress is not None:
                on_progress(done, total)

        try:
            refinements = await refine_toc_with_llm(
                candidates, config, self.cancel_event, progress, call_api=call_api,
            )
        finally:
            self.cancel_event = None

        outcome = merge_refinements(self.tree, refinements)
        self.tree = outcome.tree
        self._log(
            AuditEventKind.REFINED,
            f"AI refinement reviewed {len(candidates)} entries: "
            f"{outcome.updated} rescored, {outcome.removed} removed",
        )
        return outcome

    def cancel_refinement(self) -> bool:
        if self.cancel_event is None:
            return False
        self.cancel_event.set()
        return True

    # -------------------------------------------------------
    # Mutations
    # -------------------------------------------------------

    def edit_label(self, node_id: str, label: str) -> bool:
        node = self._require_node(node_id)
        if node is None:
            return False
        self.tree = toc_tree.edit_label(self.tree, node_id, label)
        new_label = toc_tree.find_node(self.tree, node_id).label
        self._log(
            AuditEventKind.EDITED_LABEL,
            f'Label changed from "{node.label}" to "{new_label}"',
            node_id, new_label,
        )
        return True

    def delete_node(self, node_id: str) -> bool:
        node = self._require_node(node_id)
        if node is None:
            return False
        self.tree = toc_tree.delete_node(self.tree, node_id)
        removed = len(toc_tree.collect_ids([node]))
        description = f'Deleted entry "{node.label}"'
        if removed > 1:
            description += f" and {removed - 1} nested entries"
        self._log(AuditEventKind.DELETED, description, node_id, node.label)
        return True

    def confirm_unknown(self, node_id: str) -> bool:
        node = self._require_node(node_id)
        if node is None:
            return False
        self.tree = toc_tree.confirm_unknown(self.tree, node_id)
        self._log(
            AuditEventKind.CONFIRMED_UNKNOWN,
            f'User confirmed accuracy of "{node.label}"',
            node_id, node.label,
        )
        return True

    def reorder(self, parent_id: Optional[str], child_ids: Sequence[str]) -> bool:
        parent = None
        if parent_id is not None:
            parent = self._require_node(parent_id)
            if parent is None:
                return False

        before = self.tree
        self.tree = toc_tree.reorder_siblings(self.tree, parent_id, child_ids)
        siblings = parent.children if parent is not None else before
        if [c.id for c in siblings] == list(child_ids):
            return False

        where = f'under "{parent.label}"' if parent is not None else "at top level"
        self._log(
            AuditEventKind.MOVED,
            f"TOC entries reordered {where}",
            parent_id, parent.label if parent is not None else None,
        )
        return True

    def add_node(self, label: str, page: int, parent_id: Optional[str] = None) -> Optional[TocNode]:
        parent = None
        if parent_id is not None:
            parent = self._require_node(parent_id)
            if parent is None:
                return None
        if self.page_count and page > self.page_count:
            raise ValidationError(f"Page {page} out of range (1..{self.page_count})")

        node = toc_tree.make_manual_node(label, page, self.node_ids, parent)
        self.tree = toc_tree.add_node(self.tree, node, parent_id)
        where = f' under "{parent.label}"' if parent is not None else ""
        self._log(
            AuditEventKind.ADDED,
            f'Added entry "{node.label}" (page {page}){where}',
            node.id, node.label,
        )
        return node

    def acknowledge(self) -> None:
        """Record that the user read the AI-generated content disclosure."""
        self.acknowledged = True

    def save(self) -> None:
        if not self.acknowledged:
            raise ValidationError("Acknowledge the AI-generated content notice before saving")
        self._log(AuditEventKind.SAVED, "TOC saved by user")

    # -------------------------------------------------------
    # Views
    # -------------------------------------------------------

    def toc_dict(self) -> List[Dict[str, Any]]:
        return [n.to_dict() for n in self.tree]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "file_name": self.file_name,
            "page_count": self.page_count,
            "acknowledged": self.acknowledged,
            "entries": len(flatten_toc(self.tree)),
            "refining": self.cancel_event is not None,
            "refine_progress": {"done": self.refine_progress[0], "total": self.refine_progress[1]},
            "created_at": self.created_at,
        }


class SessionStore:
    """In-memory registry of document sessions plus their upload folders."""

    def __init__(self, upload_dir: Optional[Path] = None):
        self.upload_dir = Path(upload_dir or UPLOAD_DIR)
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        self.sessions: Dict[str, DocumentSession] = {}

    def session_dir(self, session_id: str) -> Path:
        return self.upload_dir / session_id

    def create(self, file_name: str, content: bytes) -> DocumentSession:
        session_id = f"doc_{uuid.uuid4().hex[:12]}"
        folder = self.session_dir(session_id)
        folder.mkdir(parents=True, exist_ok=True)

        safe_name = Path(file_name or "document.pdf").name
        pdf_path = folder / safe_name
        pdf_path.write_bytes(content)

        session = DocumentSession(session_id, None, safe_name)
        try:
            session.load_document(str(pdf_path), safe_name)
        except Exception:
            shutil.rmtree(folder, ignore_errors=True)
            raise

        self.sessions[session_id] = session
        return session

    def get(self, session_id: str) -> DocumentSession:
        session = self.sessions.get(session_id)
        if session is None:
            raise ResourceNotFoundError(f"Document session {session_id} not found")
        return session

    def remove(self, session_id: str) -> None:
        session = self.get(session_id)
        session.cancel_refinement()
        del self.sessions[session_id]
        shutil.rmtree(self.session_dir(session_id), ignore_errors=True)
        logger.info("Session %s removed", session_id)


session_store = SessionStore()
