from .audit_log import AuditEventKind, AuditEvent, AuditLog, create_audit_log, append_event
from .tree import (
    find_node, edit_label, delete_node, confirm_unknown, reorder_siblings,
    add_node, make_manual_node, collect_ids
)
from .session import DocumentSession, SessionStore, session_store

__all__ = [
    "AuditEventKind", "AuditEvent", "AuditLog", "create_audit_log", "append_event",
    "find_node", "edit_label", "delete_node", "confirm_unknown", "reorder_siblings",
    "add_node", "make_manual_node", "collect_ids",
    "DocumentSession", "SessionStore", "session_store",
]
