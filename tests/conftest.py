"""
Shared fixtures: generated PDFs and a fake completion client.
"""

from __future__ import annotations

import threading

import fitz
import pytest

from bloombuddy.llm_client import CompletionError

VALID_KEY = "sk-test-" + "a1B2c3D4e5" * 4


class FakeCompletionClient:
    """
    Stands in for CompletionClient. Replies are looked up by page number
    (``None`` for whole-text calls); pages in ``fail_pages`` raise.
    """

    def __init__(self, replies=None, fail_pages=(), default=None):
        self.replies = replies or {}
        self.fail_pages = set(fail_pages)
        self.default = default if default is not None else {}
        self.image_calls: list[int] = []
        self.text_calls: list[str] = []
        self._lock = threading.Lock()

    def _reply(self, page_number):
        if page_number in self.fail_pages:
            raise CompletionError("API error: 500", status_code=500)
        return self.replies.get(page_number, self.default)

    def analyze_image(self, page_image):
        with self._lock:
            self.image_calls.append(page_image.page_number)
        return self._reply(page_image.page_number)

    def analyze_text(self, content, label="text"):
        with self._lock:
            self.text_calls.append(content)
        page_number = int(label.split()[-1]) if label.startswith("page ") else None
        return self._reply(page_number)


def make_pdf(path, page_texts):
    doc = fitz.open()
    for text in page_texts:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
    doc.save(str(path))
    doc.close()
    return str(path)


@pytest.fixture
def sample_pdf(tmp_path):
    """Four-page worksheet, one question per page."""
    return make_pdf(
        tmp_path / "biology_quiz.pdf",
        [
            "1. Define photosynthesis.",
            "2. Explain why leaves are green.",
            "3. Calculate the rate of oxygen production.",
            "4. Design an experiment to test light intensity.",
        ],
    )


@pytest.fixture
def store_env(tmp_path, monkeypatch):
    """Point the SQLite store and uploads at a temporary directory."""
    monkeypatch.setenv("BLOOMBUDDY_DB_PATH", str(tmp_path / "test.sqlite"))
    monkeypatch.setenv("BLOOMBUDDY_DATA_DIR", str(tmp_path / "data"))
    from bloombuddy import database as db

    db.init_db()
    return tmp_path
