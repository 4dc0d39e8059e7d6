"""
Value types shared by the extraction pipeline, the refinement merger and the
TOC editor. Everything here is immutable: tree edits build new nodes with
``dataclasses.replace`` and share untouched subtrees.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Tuple


class NodeStatus(str, Enum):
    CONFIRMED = "confirmed"
    UNKNOWN = "unknown"
    USER_CONFIRMED = "user_confirmed"


@dataclass(frozen=True)
class TextSpan:
    """One positioned text run as delivered by the span collector."""
    text: str
    font_size: float
    bold: bool
    page: int            # 1-based
    y: float             # baseline, only used for ordering within a page


@dataclass(frozen=True)
class HeadingCandidate:
    span: TextSpan
    level: int

    @property
    def text(self) -> str:
        return self.span.text

    @property
    def page(self) -> int:
        return self.span.page


@dataclass(frozen=True)
class TocNode:
    id: str
    label: str
    level: int
    page: int
    confidence: float
    status: NodeStatus
    children: Tuple["TocNode", ...] = ()
    manual: bool = False
    # verbatim source text; "" for manually added nodes
    text: str = ""

    @property
    def is_unknown(self) -> bool:
        return self.status is NodeStatus.UNKNOWN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "level": self.level,
            "page": self.page,
            "confidence": round(self.confidence, 4),
            "status": self.status.value,
            "manual": self.manual,
            "text": self.text,
            "children": [c.to_dict() for c in self.children],
        }


TocTree = Tuple[TocNode, ...]
