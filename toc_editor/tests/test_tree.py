import pytest

from core.error_handler import ValidationError
from core.ids import SequentialIdGenerator
from outline_extractor.models import NodeStatus, TocNode
from toc_editor import (
    add_node, collect_ids, confirm_unknown, delete_node, edit_label, find_node,
    make_manual_node, reorder_siblings,
)


def node(id, label, level=1, page=1, confidence=0.8, children=(), status=NodeStatus.CONFIRMED):
    return TocNode(id=id, label=label, level=level, page=page, confidence=confidence,
                   status=status, children=tuple(children), text=label)


@pytest.fixture
def tree():
    return (
        node("a", "Intro", children=[
            node("a1", "Scope", 2),
            node("a2", "Unknown: Terms", 2, confidence=0.2, status=NodeStatus.UNKNOWN),
        ]),
        node("b", "Body", page=4, children=[node("b1", "Part", 2, page=5, children=[node("b1x", "Deep", 3)])]),
        node("c", "End", page=9),
    )


def test_find_node_depth_first(tree):
    assert find_node(tree, "b1x").label == "Deep"
    assert find_node(tree, "zzz") is None


def test_edit_label_shares_untouched_branches(tree):
    new = edit_label(tree, "a1", "  Scope and purpose ")
    assert find_node(new, "a1").label == "Scope and purpose"
    assert new[1] is tree[1] and new[2] is tree[2]
    assert new[0].children[1] is tree[0].children[1]
    assert find_node(tree, "a1").label == "Scope"


def test_edit_label_rejects_blank(tree):
    with pytest.raises(ValidationError):
        edit_label(tree, "a1", "   ")


def test_edit_unknown_id_returns_same_tree(tree):
    assert edit_label(tree, "nope", "x") is tree


def test_confirm_unknown_keeps_confidence(tree):
    new = confirm_unknown(tree, "a2")
    confirmed = find_node(new, "a2")
    assert confirmed.status is NodeStatus.USER_CONFIRMED
    assert confirmed.confidence == 0.2
    assert confirmed.label == "Unknown: Terms"


def test_delete_removes_whole_subtree(tree):
    new = delete_node(tree, "b")
    assert [n.id for n in new] == ["a", "c"]
    assert find_node(new, "b1x") is None
    assert new[0] is tree[0]


def test_delete_nested(tree):
    new = delete_node(tree, "b1")
    assert find_node(new, "b").children == ()
    assert len(collect_ids(new)) == len(collect_ids(tree)) - 2


def test_delete_unknown_id_is_noop(tree):
    assert delete_node(tree, "missing") is tree


def test_reorder_roots(tree):
    new = reorder_siblings(tree, None, ["c", "a", "b"])
    assert [n.id for n in new] == ["c", "a", "b"]
    assert new[1] is tree[0]


def test_reorder_children(tree):
    new = reorder_siblings(tree, "a", ["a2", "a1"])
    assert [c.id for c in find_node(new, "a").children] == ["a2", "a1"]
    assert sorted(collect_ids(new)) == sorted(collect_ids(tree))


@pytest.mark.parametrize("ids", [
    ["a1"],
    ["a1", "a2", "b"],
    ["a1", "a1"],
    ["a1", "zz"],
])
def test_reorder_must_be_permutation(tree, ids):
    with pytest.raises(ValidationError):
        reorder_siblings(tree, "a", ids)


def test_reorder_unknown_parent_is_noop(tree):
    assert reorder_siblings(tree, "ghost", []) is tree


def test_add_manual_root_and_child(tree):
    gen = SequentialIdGenerator("manual")
    root = make_manual_node("Appendix", 10, gen)
    assert root.level == 1 and root.manual and root.confidence == 1.0
    assert root.status is NodeStatus.USER_CONFIRMED
    assert root.text == ""

    new = add_node(tree, root)
    assert new[-1] is root

    parent = find_node(new, "b1")
    child = make_manual_node("Detail", 6, gen, parent)
    assert child.level == 3
    new = add_node(new, child, "b1")
    assert [c.id for c in find_node(new, "b1").children] == ["b1x", "manual-2"]


def test_add_rejects_duplicate_id(tree):
    with pytest.raises(ValidationError):
        add_node(tree, node("c", "Clash"))


@pytest.mark.parametrize("label,page", [("", 1), ("Title", 0), ("Title", -2)])
def test_manual_node_validation(label, page):
    with pytest.raises(ValidationError):
        make_manual_node(label, page, SequentialIdGenerator("m"))


def test_collect_ids_preorder(tree):
    assert collect_ids(tree) == ["a", "a1", "a2", "b", "b1", "b1x", "c"]
