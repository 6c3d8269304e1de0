"""Shared test doubles. No network, no API key."""

from __future__ import annotations

import sys
import tempfile
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from tender_qa.document_service import DocumentService
from tender_qa.errors import QueryError
from tender_qa.store import RecordStore


class StubDocumentService(DocumentService):
    """Records every call. `fail_on` holds (external_id, question) pairs to fail."""

    def __init__(self, fail_on=None):
        self.fail_on = set(fail_on or ())
        self.registered = []
        self.asked = []
        self.released = []

    def register(self, data, filename="document.pdf"):
        self.registered.append((filename, len(data)))
        return f"ext-{len(self.registered)}"

    def ask(self, external_ids, question):
        self.asked.append((external_ids, question))
        if (external_ids, question) in self.fail_on:
            raise QueryError(f"service unavailable for {question}")
        return f"Answer to {question}"

    def release(self, external_id):
        self.released.append(external_id)
        return True


def temp_dir() -> Path:
    return Path(tempfile.mkdtemp(prefix="tender-qa-test-"))


def make_store(max_files: int = 3, on_evict=None) -> RecordStore:
    return RecordStore(str(temp_dir() / "data" / "db.json"), max_files, on_evict=on_evict)
