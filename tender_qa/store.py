"""
store.py - The record store: questions, files, and their answers.

Everything lives in one JSON document (data/db.json by default) that is
loaded once and rewritten in full after every mutation. That is plenty
for a handful of tenders and a few dozen questions, and it means the
document on disk is always something a human can open and read.

Writes go to a temp file in the same directory and are then renamed over
the old document, so a crash mid-write leaves the previous version
intact. Every mutation works on a copy of the in-memory state and only
swaps it in after the write succeeded; a failed write leaves memory and
disk in agreement.

FastAPI runs sync handlers on a threadpool, so all reads and writes go
through one re-entrant lock. Without it, an add-question racing with a
submission's add-answer could silently drop one of the two.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from tender_qa.errors import StorageError, ValidationError
from tender_qa.retention import DEFAULT_KEEP, purge_local_copies, select_evictions
from tender_qa.schemas import (
    Answer,
    Database,
    FileRecord,
    Question,
    QuestionAnswer,
    QuestionView,
)

logger = logging.getLogger(__name__)

EvictionHook = Callable[[List[FileRecord]], None]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class RecordStore:
    """
    Owns the record document. Construct one per process (or per test) and
    hand it to whoever needs it; there is deliberately no module-level
    instance.
    """

    def __init__(
        self,
        path: str,
        max_files: int = DEFAULT_KEEP,
        on_evict: Optional[EvictionHook] = None,
    ):
        if max_files < 1:
            raise ValueError(f"max_files must be >= 1, got {max_files}")
        self.path = Path(path)
        self.max_files = max_files
        self.on_evict = on_evict
        self._lock = threading.RLock()
        self._last_question_id = 0
        self._data = self._load()

    # ── Persistence ─────────────────────────────────────────────────────

    def _load(self) -> Database:
        if not self.path.exists():
            logger.info("No record document at %s, starting empty", self.path)
            data = Database()
            self._write(data)
            return data

        try:
            raw = self.path.read_text(encoding="utf-8")
            data = Database.model_validate(json.loads(raw)) if raw.strip() else Database()
        except OSError as exc:
            raise StorageError(f"Cannot read record document {self.path}: {exc}") from exc
        except (json.JSONDecodeError, PydanticValidationError) as exc:
            raise StorageError(f"Record document {self.path} is not valid: {exc}") from exc

        for q in data.questions:
            if q.id.isdigit():
                self._last_question_id = max(self._last_question_id, int(q.id))

        logger.info("Loaded record document %s (%d questions, %d files)",
                    self.path, len(data.questions), len(data.files))
        return data

    def _write(self, data: Database) -> None:
        payload = json.dumps(data.model_dump(by_alias=True), indent=2, ensure_ascii=False)
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=".db-", suffix=".json.tmp", dir=str(self.path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
        except OSError as exc:
            if tmp_name and os.path.exists(tmp_name):
                try:
                    os.remove(tmp_name)
                except OSError:
                    logger.debug("Could not remove temp file %s", tmp_name)
            logger.error("Failed to write record document %s: %s", self.path, exc)
            raise StorageError(f"Cannot write record document {self.path}: {exc}") from exc

    def _commit(self, data: Database) -> None:
        self._write(data)
        self._data = data

    def reload(self) -> None:
        """Re-read the document from disk, dropping in-memory state."""
        with self._lock:
            self._data = self._load()

    # ── Questions ───────────────────────────────────────────────────────

    def _next_question_id(self) -> str:
        # Microsecond timestamp, bumped when two adds land in the same tick.
        now_us = time.time_ns() // 1000
        self._last_question_id = max(now_us, self._last_question_id + 1)
        return str(self._last_question_id)

    def add_question(self, text) -> str:
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Missing or invalid 'question': expected a non-empty string.")

        with self._lock:
            data = self._data.model_copy(deep=True)
            question = Question(id=self._next_question_id(), text=text, created_at=_now())
            data.questions.append(question)
            self._commit(data)

        logger.info("Question added: %s", question.id)
        return question.id

    def delete_question(self, question_id: str) -> bool:
        """
        Remove a question. Answers already recorded against it stay inside
        their files as history; see list_questions_with_answers.
        """
        with self._lock:
            if not any(q.id == question_id for q in self._data.questions):
                logger.info("Delete of unknown question %s ignored", question_id)
                return False
            data = self._data.model_copy(deep=True)
            data.questions = [q for q in data.questions if q.id != question_id]
            self._commit(data)

        logger.info("Question deleted: %s", question_id)
        return True

    def list_questions(self) -> List[Question]:
        with self._lock:
            return [q.model_copy() for q in self._data.questions]

    def get_question(self, question_id: str) -> Optional[Question]:
        with self._lock:
            for q in self._data.questions:
                if q.id == question_id:
                    return q.model_copy()
        return None

    def list_questions_with_answers(self) -> List[QuestionView]:
        """Live questions, each with the answers every file holds for it."""
        with self._lock:
            views = []
            for q in self._data.questions:
                answers = []
                for f in self._data.files:
                    a = f.answer_for(q.id)
                    if a is not None:
                        answers.append(QuestionAnswer(
                            file_id=f.id,
                            file_name=f.original_name,
                            answer=a.answer,
                            created_at=a.created_at,
                        ))
                views.append(QuestionView(
                    id=q.id, text=q.text, created_at=q.created_at, answers=answers,
                ))
            return views

    # ── Files ───────────────────────────────────────────────────────────

    def find_file_by_name(self, original_name: str) -> Optional[FileRecord]:
        with self._lock:
            for f in self._data.files:
                if f.original_name == original_name:
                    return f.model_copy(deep=True)
        return None

    def add_file(
        self,
        external_id: str,
        original_name: str,
        size: int,
        pages: int = 0,
        local_path: Optional[str] = None,
    ) -> str:
        """
        Record an uploaded file and apply retention.

        Re-adding a name we already hold returns the existing id untouched;
        retention is not re-applied in that case.
        """
        with self._lock:
            for f in self._data.files:
                if f.original_name == original_name:
                    logger.info("File %r already recorded as %s", original_name, f.id)
                    return f.id

            data = self._data.model_copy(deep=True)
            record = FileRecord(
                id=uuid.uuid4().hex,
                external_id=external_id,
                original_name=original_name,
                size=size,
                pages=pages,
                local_path=local_path,
                created_at=_now(),
            )
            # Retention runs over the existing files only, so the new record
            # survives even when older entries carry later timestamps.
            data.files, evicted = select_evictions(data.files, self.max_files - 1)
            data.files.append(record)
            self._commit(data)

        logger.info("File added: %s (%r, %d bytes, external %s)",
                    record.id, original_name, size, external_id)
        if evicted:
            self._after_eviction(evicted)
        return record.id

    def _after_eviction(self, evicted: List[FileRecord]) -> None:
        logger.info("Retention evicted %d file(s): %s",
                    len(evicted), ", ".join(f.id for f in evicted))
        purge_local_copies(evicted)
        if self.on_evict is not None:
            try:
                self.on_evict(evicted)
            except Exception:
                logger.exception("Eviction hook failed for %d file(s)", len(evicted))

    def list_files(self) -> List[FileRecord]:
        with self._lock:
            return [f.model_copy(deep=True) for f in self._data.files]

    def get_file(self, file_id: str) -> Optional[FileRecord]:
        with self._lock:
            for f in self._data.files:
                if f.id == file_id:
                    return f.model_copy(deep=True)
        return None

    # ── Answers ─────────────────────────────────────────────────────────

    def has_answer(self, file_id: str, question_id: str) -> bool:
        with self._lock:
            for f in self._data.files:
                if f.id == file_id:
                    return f.answer_for(question_id) is not None
        return False

    def add_answer(
        self,
        file_id: str,
        question_id: str,
        question_text: str,
        answer_text: str,
    ) -> bool:
        """
        Append an answer to a file. Does not check for an existing answer
        to the same question; the submission workflow does that.
        """
        with self._lock:
            data = self._data.model_copy(deep=True)
            target = next((f for f in data.files if f.id == file_id), None)
            if target is None:
                logger.warning("Answer for unknown file %s dropped (question %s)",
                               file_id, question_id)
                return False
            target.answers.append(Answer(
                question_id=question_id,
                question=question_text,
                answer=answer_text,
                created_at=_now(),
            ))
            self._commit(data)

        logger.info("Answer stored: file %s, question %s (%d chars)",
                    file_id, question_id, len(answer_text))
        return True
