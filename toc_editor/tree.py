"""
Pure structural edits on a TOC tree.

Every function takes the current tuple of root nodes and returns a new one;
nodes off the edited path are shared with the input, never copied or mutated.
An id that is not in the tree leaves the tree unchanged (same object).
"""
from __future__ import annotations

from dataclasses import replace
from typing import Callable, List, Optional, Sequence, Tuple

from core.error_handler import ValidationError
from core.ids import IdGenerator
from outline_extractor.models import NodeStatus, TocNode, TocTree

NodeFn = Callable[[TocNode], TocNode]


def find_node(nodes: Sequence[TocNode], node_id: str) -> Optional[TocNode]:
    """Depth-first, first match wins."""
    for n in nodes:
        if n.id == node_id:
            return n
        found = find_node(n.children, node_id)
        if found is not None:
            return found
    return None


def _update(nodes: TocTree, node_id: str, fn: NodeFn) -> Tuple[TocTree, bool]:
    for i, n in enumerate(nodes):
        if n.id == node_id:
            return nodes[:i] + (fn(n),) + nodes[i + 1:], True
        children, hit = _update(n.children, node_id, fn)
        if hit:
            return nodes[:i] + (replace(n, children=children),) + nodes[i + 1:], True
    return nodes, False


def update_node(nodes: Sequence[TocNode], node_id: str, fn: NodeFn) -> TocTree:
    updated, _ = _update(tuple(nodes), node_id, fn)
    return updated


def _clean_label(label: str) -> str:
    if not isinstance(label, str) or not label.strip():
        raise ValidationError("Label cannot be empty")
    return label.strip()


def edit_label(nodes: Sequence[TocNode], node_id: str, label: str) -> TocTree:
    label = _clean_label(label)
    return update_node(nodes, node_id, lambda n: replace(n, label=label))


def confirm_unknown(nodes: Sequence[TocNode], node_id: str) -> TocTree:
    """Mark a node user_confirmed whatever its status; confidence is untouched."""
    return update_node(nodes, node_id, lambda n: replace(n, status=NodeStatus.USER_CONFIRMED))


def delete_node(nodes: Sequence[TocNode], node_id: str) -> TocTree:
    """Remove the node and its whole subtree; children are not promoted."""
    nodes = tuple(nodes)
    for i, n in enumerate(nodes):
        if n.id == node_id:
            return nodes[:i] + nodes[i + 1:]
        children = delete_node(n.children, node_id)
        if children is not n.children:
            return nodes[:i] + (replace(n, children=children),) + nodes[i + 1:]
    return nodes


def reorder_siblings(
    nodes: Sequence[TocNode],
    parent_id: Optional[str],
    ordered_child_ids: Sequence[str],
) -> TocTree:
    """
    Permute the children of ``parent_id`` (or the roots when None).

    The ids must be exactly the current children, each once: reordering
    never adds or removes nodes. Unknown parent is a no-op.
    """
    nodes = tuple(nodes)

    def permute(children: TocTree) -> TocTree:
        by_id = {c.id: c for c in children}
        ids = list(ordered_child_ids)
        if len(ids) != len(children) or set(ids) != set(by_id) or len(set(ids)) != len(ids):
            raise ValidationError("Reorder must list exactly the existing children, each once")
        return tuple(by_id[i] for i in ids)

    if parent_id is None:
        return permute(nodes)
    return update_node(nodes, parent_id, lambda n: replace(n, children=permute(n.children)))


def add_node(nodes: Sequence[TocNode], node: TocNode, parent_id: Optional[str] = None) -> TocTree:
    """Append as last root, or as last child of ``parent_id``."""
    nodes = tuple(nodes)
    if find_node(nodes, node.id) is not None:
        raise ValidationError(f"Node id {node.id} already exists")
    if parent_id is None:
        return nodes + (node,)
    return update_node(nodes, parent_id, lambda n: replace(n, children=n.children + (node,)))


def make_manual_node(
    label: str,
    page: int,
    id_gen: IdGenerator,
    parent: Optional[TocNode] = None,
) -> TocNode:
    if not isinstance(page, int) or page < 1:
        raise ValidationError("Page must be a positive integer")
    return TocNode(
        id=id_gen(),
        label=_clean_label(label),
        level=parent.level + 1 if parent is not None else 1,
        page=page,
        confidence=1.0,
        status=NodeStatus.USER_CONFIRMED,
        manual=True,
    )


def collect_ids(nodes: Sequence[TocNode]) -> List[str]:
    ids: List[str] = []
    stack = list(reversed(nodes))
    while stack:
        n = stack.pop()
        ids.append(n.id)
        stack.extend(reversed(n.children))
    return ids
