# outline_extractor/heading_extractor.py

import os
import math
import logging
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

import numpy as np

from core.ids import IdGenerator, make_id_generator
from .config import (
    MIN_HEADING_SIZE, HEADING_SIZE_DELTA, MIN_HEADING_CHARS, MAX_HEADING_CHARS,
    DEFAULT_BODY_SIZE, UNKNOWN_CONFIDENCE_THRESHOLD, CONFIDENCE_SATURATION_DELTA,
    BOLD_BONUS, UNKNOWN_PREFIX,
)
from .models import HeadingCandidate, NodeStatus, TextSpan, TocNode, TocTree

logger = logging.getLogger(__name__)
# Set default level via env (DEBUG for dev, INFO for prod)
logger.setLevel(logging.DEBUG if os.environ.get("HEADING_LOG_DEBUG") == "1" else logging.INFO)

# -------------------------------------------------------
# Utilities
# -------------------------------------------------------

def _bucket(font_size: float) -> float:
    """Round to the nearest 0.5pt, halves rounding up."""
    return math.floor(font_size * 2 + 0.5) / 2

def modal_font_size(spans: Sequence[TextSpan]) -> float:
    """
    Most frequent 0.5pt size bucket across all spans: the body-text baseline.
    Ties go to the bucket seen first in document order.
    """
    counts: Dict[float, int] = {}
    for s in spans:
        b = _bucket(s.font_size)
        counts[b] = counts.get(b, 0) + 1

    mode, best = DEFAULT_BODY_SIZE, 0
    # dicts keep insertion order, so strict ">" keeps the first-seen bucket on ties
    for size, count in counts.items():
        if count > best:
            mode, best = size, count
    return mode

def unknown_label(text: str) -> str:
    return f"{UNKNOWN_PREFIX}{text}"

def label_for(text: str, status: NodeStatus) -> str:
    return unknown_label(text) if status is NodeStatus.UNKNOWN else text

def status_for(confidence: float) -> NodeStatus:
    if confidence < UNKNOWN_CONFIDENCE_THRESHOLD:
        return NodeStatus.UNKNOWN
    return NodeStatus.CONFIRMED

# -------------------------------------------------------
# Pipeline stages
# -------------------------------------------------------

def filter_candidates(
    spans: Sequence[TextSpan],
    body_size: Optional[float] = None,
    *,
    min_size: float = MIN_HEADING_SIZE,
    size_delta: float = HEADING_SIZE_DELTA,
    min_chars: int = MIN_HEADING_CHARS,
    max_chars: int = MAX_HEADING_CHARS,
) -> List[TextSpan]:
    """
    Keep spans that look like headings, in document order.

    A span must be large enough, either clearly bigger than body text or bold,
    and of plausible heading length. Repeated (page, text) pairs, typically
    running headers drawn twice, keep only their first occurrence.
    """
    if body_size is None:
        body_size = modal_font_size(spans)

    seen = set()
    candidates: List[TextSpan] = []
    for s in spans:
        if s.font_size < min_size:
            continue
        if s.font_size < body_size + size_delta and not s.bold:
            continue
        if not min_chars <= len(s.text) <= max_chars:
            continue

        key = (s.page, s.text.lower().strip())
        if key in seen:
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug('Duplicate candidate dropped: p%d "%s"', s.page, s.text)
            continue
        seen.add(key)
        candidates.append(s)

    return candidates

def assign_levels(candidates: Sequence[TextSpan]) -> List[HeadingCandidate]:
    """
    Rank distinct font sizes document-wide, largest first: rank 1 is level 1.
    Equal sizes always share a level.
    """
    sizes = sorted({c.font_size for c in candidates}, reverse=True)
    size_to_level = {size: i + 1 for i, size in enumerate(sizes)}
    return [HeadingCandidate(span=c, level=size_to_level[c.font_size]) for c in candidates]

def score_confidence(candidates: Sequence[TextSpan], body_size: float) -> np.ndarray:
    """
    Vectorized confidence in [0, 1]: size delta over the saturation delta,
    plus a flat bonus for bold text.
    """
    n = len(candidates)
    sizes = np.fromiter((c.font_size for c in candidates), dtype=np.float64, count=n)
    bold = np.fromiter((c.bold for c in candidates), dtype=bool, count=n)

    size_score = np.clip((sizes - body_size) / CONFIDENCE_SATURATION_DELTA, 0.0, 1.0)
    return np.clip(size_score + np.where(bold, BOLD_BONUS, 0.0), 0.0, 1.0)

def make_node(candidate: HeadingCandidate, confidence: float, id_gen: IdGenerator) -> TocNode:
    status = status_for(confidence)
    return TocNode(
        id=id_gen(),
        label=label_for(candidate.text, status),
        level=candidate.level,
        page=candidate.page,
        confidence=confidence,
        status=status,
        manual=False,
        text=candidate.text,
    )

class _OpenNode:
    """Mutable stand-in used only while the depth stack is being walked."""

    __slots__ = ("node", "children")

    def __init__(self, node: TocNode):
        self.node = node
        self.children: List["_OpenNode"] = []

    def freeze(self) -> TocNode:
        return replace(self.node, children=tuple(c.freeze() for c in self.children))

def build_hierarchy(flat: Sequence[TocNode]) -> TocTree:
    """
    Nest a flat, leveled, document-ordered node list with a depth stack.

    Each node closes every open ancestor at its own level or deeper, then
    becomes a child of what is left on top of the stack, or a new root.
    Deep headings with no shallower ancestor stay roots.
    """
    roots: List[_OpenNode] = []
    stack: List[_OpenNode] = []

    for node in flat:
        while stack and stack[-1].node.level >= node.level:
            stack.pop()

        entry = _OpenNode(node)
        if stack:
            stack[-1].children.append(entry)
        else:
            roots.append(entry)
        stack.append(entry)

    return tuple(r.freeze() for r in roots)

def flatten_toc(nodes: Sequence[TocNode]) -> List[TocNode]:
    """Pre-order flattening: parents before children, siblings in order."""
    result: List[TocNode] = []

    def walk(ns: Sequence[TocNode]) -> None:
        for n in ns:
            result.append(n)
            walk(n.children)

    walk(nodes)
    return result

# -------------------------------------------------------
# Public API
# -------------------------------------------------------

def extract_toc(spans: Sequence[TextSpan], id_gen: Optional[IdGenerator] = None) -> TocTree:
    """
    Spans in, heading tree out. Never invents text: every label is a span's
    text, optionally behind the ambiguity prefix.
    """
    if not spans:
        return ()

    id_gen = id_gen or make_id_generator("node")
    body_size = modal_font_size(spans)
    candidates = filter_candidates(spans, body_size)
    if not candidates:
        logger.info("No heading candidates among %d spans (body size %.1f)", len(spans), body_size)
        return ()

    leveled = assign_levels(candidates)
    confidences = score_confidence(candidates, body_size)

    flat = [make_node(c, float(conf), id_gen) for c, conf in zip(leveled, confidences)]
    tree = build_hierarchy(flat)

    unknown = sum(1 for n in flat if n.is_unknown)
    logger.info(
        "Extracted %d headings (%d unknown, %d levels, %d roots) from %d spans, body size %.1f",
        len(flat), unknown, max(c.level for c in leveled), len(tree), len(spans), body_size,
    )
    return tree
