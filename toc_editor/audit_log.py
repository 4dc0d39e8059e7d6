from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from core.ids import IdGenerator, make_id_generator

DEFAULT_ACTOR = "User"

Clock = Callable[[], datetime]


class AuditEventKind(str, Enum):
    GENERATED = "generated"
    REFINED = "refined"
    EDITED_LABEL = "edited_label"
    MOVED = "moved"
    ADDED = "added"
    DELETED = "deleted"
    SAVED = "saved"
    CONFIRMED_UNKNOWN = "confirmed_unknown"


@dataclass(frozen=True)
class AuditEvent:
    id: str
    kind: AuditEventKind
    timestamp: str  # ISO-8601, UTC
    actor: str
    description: str
    node_id: Optional[str] = None
    node_label: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "kind": self.kind.value,
            "timestamp": self.timestamp,
            "actor": self.actor,
            "description": self.description,
        }
        if self.node_id is not None:
            data["node_id"] = self.node_id
        if self.node_label is not None:
            data["node_label"] = self.node_label
        return data


@dataclass(frozen=True)
class AuditLog:
    # append-only: a new log is built on every append
    entries: Tuple[AuditEvent, ...] = ()

    def __len__(self) -> int:
        return len(self.entries)

    def to_list(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self.entries]


_default_event_ids = make_id_generator("evt")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def create_audit_log() -> AuditLog:
    return AuditLog()


def append_event(
    log: AuditLog,
    kind: AuditEventKind,
    description: str,
    node_id: Optional[str] = None,
    node_label: Optional[str] = None,
    *,
    actor: str = DEFAULT_ACTOR,
    id_gen: Optional[IdGenerator] = None,
    clock: Optional[Clock] = None,
) -> AuditLog:
    """Return a new log one event longer; existing entries are reused untouched."""
    event = AuditEvent(
        id=(id_gen or _default_event_ids)(),
        kind=AuditEventKind(kind),
        timestamp=(clock or _utc_now)().isoformat(),
        actor=actor,
        description=description,
        node_id=node_id,
        node_label=node_label,
    )
    return AuditLog(entries=log.entries + (event,))
