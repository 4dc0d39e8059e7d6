from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import List, Mapping, Sequence, Tuple

from outline_extractor.heading_extractor import flatten_toc, label_for, status_for
from outline_extractor.models import NodeStatus, TocNode, TocTree
from .refiner import LlmCandidate, Refinement, RefinementKey

logger = logging.getLogger(__name__)


def is_refinable(node: TocNode) -> bool:
    """Manual and user-confirmed nodes belong to the user; the LLM never sees them."""
    return bool(node.text) and not node.manual and node.status is not NodeStatus.USER_CONFIRMED


def refinement_candidates(tree: Sequence[TocNode]) -> List[LlmCandidate]:
    """Pre-order candidate list for every extracted, not-yet-confirmed node."""
    return [
        LlmCandidate(
            text=n.text,
            page=n.page,
            heuristic_confidence=round(n.confidence, 4),
            heuristic_level=n.level,
        )
        for n in flatten_toc(tree)
        if is_refinable(n)
    ]


@dataclass
class MergeOutcome:
    tree: TocTree
    updated: int = 0
    # every node that left the tree, descendants of rejected nodes included
    removed: int = 0
    removed_ids: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.updated or self.removed)


def _same_children(a: Sequence[TocNode], b: Sequence[TocNode]) -> bool:
    return len(a) == len(b) and all(x is y for x, y in zip(a, b))


def _holds_user_work(node: TocNode) -> bool:
    return any(n.manual or n.status is NodeStatus.USER_CONFIRMED for n in flatten_toc(node.children))


def _apply(node: TocNode, r: Refinement) -> TocNode:
    status = status_for(r.confidence)
    label = node.label
    # Re-derive the ambiguity prefix only while the label is still the generated one
    if node.label == label_for(node.text, node.status):
        label = label_for(node.text, status)
    return replace(node, confidence=r.confidence, level=r.level, status=status, label=label)


def merge_refinements(
    tree: Sequence[TocNode],
    refinements: Mapping[RefinementKey, Refinement],
) -> MergeOutcome:
    """
    Fold refinements back into the tree without changing its shape.

    Matched headings get the refined confidence, level and status. A node the
    LLM rejected leaves the tree together with its subtree, as a user delete
    would; its descendants are never moved to another parent. A rejected node
    whose subtree holds user-confirmed or manual entries is kept unchanged.
    Unmatched nodes are returned as-is (same objects).
    """
    outcome = MergeOutcome(tree=())

    def walk(nodes: Sequence[TocNode]) -> Tuple[TocNode, ...]:
        out: List[TocNode] = []
        for node in nodes:
            r = refinements.get((node.page, node.text)) if is_refinable(node) else None

            if r is not None and not r.is_heading:
                if _holds_user_work(node):
                    r = None
                else:
                    dropped = [n.id for n in flatten_toc([node])]
                    outcome.removed += len(dropped)
                    outcome.removed_ids.extend(dropped)
                    continue

            children = walk(node.children)
            if not _same_children(children, node.children):
                node = replace(node, children=children)
            if r is not None:
                node = _apply(node, r)
                outcome.updated += 1
            out.append(node)
        return tuple(out)

    outcome.tree = walk(tree)
    logger.info("Merged refinements: %d updated, %d removed", outcome.updated, outcome.removed)
    return outcome
