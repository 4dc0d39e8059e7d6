import asyncio
from datetime import datetime, timezone

import fitz
import pytest

from core.error_handler import DocumentLoadError, ResourceNotFoundError, ValidationError
from core.ids import SequentialIdGenerator
from llm_refinement import LlmConfig
from outline_extractor.models import NodeStatus, TextSpan
from toc_editor import AuditEventKind, DocumentSession, SessionStore, find_node

OPENAI = LlmConfig(provider="openai", api_key="sk-test")

BODY = ["Plain paragraph text one.", "Plain paragraph text two.", "Plain paragraph text three."]


def spans():
    out = []
    for page, heading, size, bold in [(1, "Overview", 20, True), (2, "Details", 15, True),
                                      (3, "Fine print", 12.5, False)]:
        out.append(TextSpan(heading, size, bold, page, 10))
        out.extend(TextSpan(t, 11, False, page, 100 + i) for i, t in enumerate(BODY))
    return out


def make_session():
    session = DocumentSession(
        "doc_test", None, "report.pdf",
        node_ids=SequentialIdGenerator("node"),
        event_ids=SequentialIdGenerator("evt"),
        clock=lambda: datetime(2024, 1, 2, tzinfo=timezone.utc),
    )
    session.generate(spans())
    return session


def kinds(session):
    return [e.kind for e in session.audit_log.entries]


def test_generate_starts_log():
    session = make_session()
    assert [n.label for n in session.tree] == ["Overview"]
    assert kinds(session) == [AuditEventKind.GENERATED]
    assert session.audit_log.entries[0].description == 'AI generated TOC with 3 entries from "report.pdf"'


def test_regenerate_replaces_log():
    session = make_session()
    session.edit_label("node-1", "Summary")
    session.generate(spans())
    assert kinds(session) == [AuditEventKind.GENERATED]
    assert session.tree[0].label == "Overview"


def test_generate_without_document():
    with pytest.raises(ValidationError):
        DocumentSession("x", None).generate()


def test_each_mutation_logs_once():
    session = make_session()
    fine_print = session.tree[0].children[0].children[0]
    assert fine_print.status is NodeStatus.UNKNOWN

    assert session.edit_label("node-1", "Executive overview")
    assert session.confirm_unknown(fine_print.id)
    assert session.add_node("Appendix", 3) is not None
    assert session.reorder(None, [session.tree[1].id, "node-1"])
    assert session.delete_node("node-1")

    assert kinds(session) == [
        AuditEventKind.GENERATED,
        AuditEventKind.EDITED_LABEL,
        AuditEventKind.CONFIRMED_UNKNOWN,
        AuditEventKind.ADDED,
        AuditEventKind.MOVED,
        AuditEventKind.DELETED,
    ]
    entries = session.audit_log.entries
    assert entries[1].description == 'Label changed from "Overview" to "Executive overview"'
    assert entries[2].description == f'User confirmed accuracy of "{fine_print.label}"'
    assert entries[5].description == 'Deleted entry "Executive overview" and 2 nested entries'
    assert [n.label for n in session.tree] == ["Appendix"]


def test_unknown_ids_do_not_log():
    session = make_session()
    assert session.edit_label("ghost", "x") is False
    assert session.delete_node("ghost") is False
    assert session.confirm_unknown("ghost") is False
    assert session.reorder("ghost", []) is False
    assert session.add_node("x", 1, "ghost") is None
    assert len(session.audit_log) == 1


def test_unchanged_order_does_not_log():
    session = make_session()
    assert session.reorder(None, ["node-1"]) is False
    assert len(session.audit_log) == 1


def test_blank_label_rejected_without_logging():
    session = make_session()
    with pytest.raises(ValidationError):
        session.edit_label("node-1", " ")
    assert len(session.audit_log) == 1


def test_add_child_under_parent():
    session = make_session()
    node = session.add_node("Notes", 2, "node-2")
    assert node.level == 3 and node.manual
    assert find_node(session.tree, "node-2").children[-1] is node
    assert session.audit_log.entries[-1].description == 'Added entry "Notes" (page 2) under "Details"'


def test_save_requires_acknowledgement():
    session = make_session()
    with pytest.raises(ValidationError):
        session.save()
    session.acknowledge()
    session.save()
    assert kinds(session)[-1] is AuditEventKind.SAVED


def test_views():
    session = make_session()
    data = session.to_dict()
    assert data["entries"] == 3
    assert data["refining"] is False
    assert session.toc_dict()[0]["children"][0]["label"] == "Details"


# -------------------------------------------------------
# Refinement
# -------------------------------------------------------

def test_refine_merges_and_logs():
    session = make_session()

    async def fake_api(config, batch):
        return [
            {"text": "Overview", "page": 1, "confidence": 0.95, "level": 1, "is_heading": True},
            {"text": "Fine print", "page": 3, "confidence": 0.1, "level": 3, "is_heading": False},
            {"text": "Invented", "page": 2, "confidence": 1, "level": 1, "is_heading": True},
        ]

    progress = []
    outcome = asyncio.run(session.refine(OPENAI, lambda d, t: progress.append((d, t)), call_api=fake_api))

    assert outcome.updated == 1 and outcome.removed == 1
    assert session.tree[0].confidence == 0.95
    assert session.tree[0].children[0].children == ()
    assert progress == [(3, 3)]
    assert session.refine_progress == (3, 3)
    assert kinds(session)[-1] is AuditEventKind.REFINED
    assert session.llm_config is OPENAI


def test_refine_skips_user_confirmed():
    session = make_session()
    session.confirm_unknown("node-1")
    sent = []

    async def fake_api(config, batch):
        sent.extend(c.text for c in batch)
        return []

    asyncio.run(session.refine(OPENAI, call_api=fake_api))
    assert sent == ["Details", "Fine print"]


def test_refine_requires_config():
    session = make_session()
    with pytest.raises(ValidationError):
        asyncio.run(session.refine())


def test_cancel_refinement():
    session = make_session()
    assert session.cancel_refinement() is False

    seen = {}

    async def fake_api(config, batch):
        seen["refining"] = session.to_dict()["refining"]
        seen["cancelled"] = session.cancel_refinement()
        return [{"text": "Overview", "page": 1, "confidence": 0.99, "level": 1}]

    outcome = asyncio.run(session.refine(OPENAI, call_api=fake_api))

    assert seen == {"refining": True, "cancelled": True}
    # results already returned are still merged
    assert outcome.updated == 1
    assert session.cancel_event is None
    assert session.cancel_refinement() is False


# -------------------------------------------------------
# Store
# -------------------------------------------------------

def _pdf_bytes():
    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), "Chapter One", fontsize=22, fontname="hebo")
    y = 110
    for t in BODY:
        page.insert_text((72, y), t, fontsize=11, fontname="helv")
        y += 15
    return doc.tobytes()


def test_store_lifecycle(tmp_path):
    store = SessionStore(tmp_path)
    session = store.create("../evil/report.pdf", _pdf_bytes())
    assert session.page_count == 1
    assert session.file_name == "report.pdf"
    assert (tmp_path / session.session_id / "report.pdf").exists()
    assert store.get(session.session_id) is session

    session.generate()
    assert session.tree[0].label == "Chapter One"

    store.remove(session.session_id)
    assert not (tmp_path / session.session_id).exists()
    with pytest.raises(ResourceNotFoundError):
        store.get(session.session_id)


def test_store_rejects_non_pdf(tmp_path):
    store = SessionStore(tmp_path)
    with pytest.raises(DocumentLoadError):
        store.create("notes.pdf", b"plain text, not a pdf")
    assert store.sessions == {}
    assert list(tmp_path.iterdir()) == []
