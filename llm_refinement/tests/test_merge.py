from outline_extractor.models import NodeStatus, TocNode
from llm_refinement import MergeOutcome, Refinement, merge_refinements, refinement_candidates
from llm_refinement.merge import is_refinable


def node(id, text, page, confidence=0.8, level=1, children=(), status=None, label=None, manual=False):
    if status is None:
        status = NodeStatus.CONFIRMED if confidence >= 0.4 else NodeStatus.UNKNOWN
    if label is None:
        label = f"Unknown: {text}" if status is NodeStatus.UNKNOWN else text
    return TocNode(
        id=id, label=label, level=level, page=page, confidence=confidence,
        status=status, children=tuple(children), manual=manual, text="" if manual else text,
    )


def ref(text, page, confidence=0.9, level=1, is_heading=True):
    return Refinement(text=text, page=page, confidence=confidence, level=level, is_heading=is_heading)


def sample_tree():
    return (
        node("n1", "Introduction", 1, children=[
            node("n2", "Background", 2, 0.6, 2),
            node("n3", "Page footer", 2, 0.3, 2),
        ]),
        node("n4", "Methods", 5, children=[node("n5", "Setup", 6, 0.7, 2)]),
    )


def test_candidates_are_preorder():
    cands = refinement_candidates(sample_tree())
    assert [c.key for c in cands] == [
        (1, "Introduction"), (2, "Background"), (2, "Page footer"), (5, "Methods"), (6, "Setup"),
    ]
    assert cands[1].heuristic_confidence == 0.6
    assert cands[1].heuristic_level == 2


def test_user_owned_nodes_are_not_candidates():
    tree = (
        node("a", "Kept", 1, status=NodeStatus.USER_CONFIRMED),
        node("b", "Added by hand", 2, manual=True, status=NodeStatus.USER_CONFIRMED),
        node("c", "Auto", 3),
    )
    assert not is_refinable(tree[0])
    assert not is_refinable(tree[1])
    assert [c.text for c in refinement_candidates(tree)] == ["Auto"]


def test_empty_refinements_leave_tree_untouched():
    tree = sample_tree()
    outcome = merge_refinements(tree, {})
    assert isinstance(outcome, MergeOutcome)
    assert not outcome.changed
    assert all(a is b for a, b in zip(outcome.tree, tree))


def test_rescoring_updates_confidence_level_and_status():
    tree = sample_tree()
    r = ref("Background", 2, confidence=0.2, level=3)
    outcome = merge_refinements(tree, {r.key: r})

    background = outcome.tree[0].children[0]
    assert background.confidence == 0.2
    assert background.level == 3
    assert background.status is NodeStatus.UNKNOWN
    assert background.label == "Unknown: Background"
    assert background.id == "n2"
    assert outcome.updated == 1 and outcome.removed == 0


def test_promotion_strips_unknown_prefix():
    tree = sample_tree()
    r = ref("Page footer", 2, confidence=0.95)
    outcome = merge_refinements(tree, {r.key: r})
    footer = outcome.tree[0].children[1]
    assert footer.status is NodeStatus.CONFIRMED
    assert footer.label == "Page footer"


def test_edited_label_is_kept():
    tree = (node("x", "Raw heading", 1, label="Better heading"),)
    r = ref("Raw heading", 1, confidence=0.1)
    outcome = merge_refinements(tree, {r.key: r})
    assert outcome.tree[0].label == "Better heading"
    assert outcome.tree[0].status is NodeStatus.UNKNOWN


def test_untouched_subtrees_are_shared():
    tree = sample_tree()
    r = ref("Background", 2)
    outcome = merge_refinements(tree, {r.key: r})
    assert outcome.tree[1] is tree[1]
    assert outcome.tree[0] is not tree[0]
    assert outcome.tree[0].children[1] is tree[0].children[1]


def test_non_heading_removed_with_subtree():
    tree = sample_tree()
    rejected = ref("Methods", 5, confidence=0.1, is_heading=False)
    child = ref("Setup", 6, confidence=0.95, level=1)
    outcome = merge_refinements(tree, {rejected.key: rejected, child.key: child})
    assert [n.id for n in outcome.tree] == ["n1"]
    assert outcome.tree[0] is tree[0]
    assert outcome.removed == 2
    assert outcome.removed_ids == ["n4", "n5"]
    # descendants are never re-parented, even when separately rescored
    assert outcome.updated == 0
    assert outcome.changed


def test_rejection_keeps_other_nodes_in_place():
    tree = sample_tree()
    r = ref("Introduction", 1, confidence=0.0, is_heading=False)
    outcome = merge_refinements(tree, {r.key: r})
    assert [n.id for n in outcome.tree] == ["n4"]
    assert outcome.tree[0] is tree[1]
    assert outcome.removed_ids == ["n1", "n2", "n3"]


def test_non_heading_leaf_removed():
    tree = sample_tree()
    r = ref("Page footer", 2, confidence=0.05, is_heading=False)
    outcome = merge_refinements(tree, {r.key: r})
    assert [c.id for c in outcome.tree[0].children] == ["n2"]


def test_refinements_for_user_confirmed_nodes_ignored():
    tree = (node("a", "Mine", 1, status=NodeStatus.USER_CONFIRMED),)
    r = ref("Mine", 1, confidence=0.0, is_heading=False)
    outcome = merge_refinements(tree, {r.key: r})
    assert outcome.tree[0] is tree[0]
    assert not outcome.changed


def test_unmatched_keys_change_nothing():
    tree = sample_tree()
    r = ref("Background", 3)
    outcome = merge_refinements(tree, {r.key: r})
    assert not outcome.changed
    assert outcome.tree[0] is tree[0]


def test_rejected_node_kept_when_subtree_holds_user_work():
    tree = (
        node("p", "Running header", 1, children=[
            node("q", "Reviewed", 2, level=2, status=NodeStatus.USER_CONFIRMED),
        ]),
    )
    r = ref("Running header", 1, confidence=0.0, is_heading=False)
    outcome = merge_refinements(tree, {r.key: r})
    assert outcome.tree[0] is tree[0]
    assert not outcome.changed
