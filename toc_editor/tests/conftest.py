# toc_editor/tests/conftest.py
import fitz
import pytest
from fastapi.testclient import TestClient

from main import app
from toc_editor.router import get_session_store
from toc_editor.session import SessionStore

BODY = [
    "Ordinary paragraph text for the sample.",
    "A second line of ordinary paragraph text.",
    "A third line so body size is the mode.",
]


def make_pdf_bytes(headings):
    """One page per (text, size) heading, each followed by body text at 11pt."""
    doc = fitz.open()
    for text, size in headings:
        page = doc.new_page()
        page.insert_text((72, 72), text, fontsize=size, fontname="hebo")
        y = 120
        for line in BODY:
            page.insert_text((72, y), line, fontsize=11, fontname="helv")
            y += 15
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def pdf_bytes():
    return make_pdf_bytes([("Chapter One", 22), ("Section A", 16), ("Chapter Two", 22)])


@pytest.fixture
def store(tmp_path):
    return SessionStore(tmp_path / "uploads")


@pytest.fixture
def client(store):
    app.dependency_overrides[get_session_store] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
