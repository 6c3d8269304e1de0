"""
workflow.py - Submission: answer every question against every file.

The run is one sequential pass, file-major and question-minor. Pairs that
already have an answer are skipped, so a second run right after a clean
first one makes zero API calls. A pair whose call fails is logged and
left unanswered; the next run picks it up again. Nothing a single pair
does can fail the whole submission.

Two submissions can overlap (double-click on the button, or the CLI and
the UI at once). Before asking about a pair we claim it in an in-flight
set; a pair claimed by the other run is skipped, and after claiming we
re-check the store so the slower run sees the faster run's answer.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Set, Tuple

from tender_qa.document_service import DocumentService
from tender_qa.errors import NoFilesError
from tender_qa.schemas import FileRecord, PairFailure, Question, SubmissionReport
from tender_qa.store import RecordStore

logger = logging.getLogger(__name__)

Pair = Tuple[str, str]


class SubmissionWorkflow:
    """
    Usage:
        workflow = SubmissionWorkflow(store, service)
        report = workflow.run()

    Keep one instance per store; the in-flight set only protects runs
    that share it.
    """

    def __init__(self, store: RecordStore, service: DocumentService):
        self.store = store
        self.service = service
        self._in_flight: Set[Pair] = set()
        self._in_flight_lock = threading.Lock()

    def run(self) -> SubmissionReport:
        files = self.store.list_files()
        if not files:
            logger.warning("Submission requested with no files on record")
            raise NoFilesError()

        questions = self.store.list_questions()
        report = SubmissionReport(files=len(files), questions=len(questions))

        t0 = time.time()
        logger.info("Submission started: %d files x %d questions",
                    len(files), len(questions))

        for record in files:
            for question in questions:
                self._process_pair(record, question, report)

        logger.info(
            "Submission done in %.1fs | %d answered | %d skipped | %d failed",
            time.time() - t0, report.answered, report.skipped, len(report.failed),
        )
        return report

    def _claim(self, pair: Pair) -> bool:
        with self._in_flight_lock:
            if pair in self._in_flight:
                return False
            self._in_flight.add(pair)
            return True

    def _release(self, pair: Pair) -> None:
        with self._in_flight_lock:
            self._in_flight.discard(pair)

    def _process_pair(
        self,
        record: FileRecord,
        question: Question,
        report: SubmissionReport,
    ) -> None:
        pair = (record.id, question.id)

        if record.answer_for(question.id) is not None:
            report.skipped += 1
            return
        if not self._claim(pair):
            logger.info("Pair file %s / question %s is in flight elsewhere, skipping",
                        record.id, question.id)
            report.skipped += 1
            return

        try:
            if self.store.has_answer(record.id, question.id):
                report.skipped += 1
                return

            report.attempted += 1
            answer = self.service.ask(record.external_id, question.text)
            if self.store.add_answer(record.id, question.id, question.text, answer):
                report.answered += 1
            else:
                # File was evicted by an upload while we were asking.
                report.failed.append(PairFailure(
                    file_id=record.id,
                    question_id=question.id,
                    error="file no longer on record",
                ))
        except Exception as exc:
            logger.error("Failed to answer question %s for file %s (%r): %s",
                         question.id, record.id, record.original_name, exc)
            report.failed.append(PairFailure(
                file_id=record.id,
                question_id=question.id,
                error=str(exc) or exc.__class__.__name__,
            ))
        finally:
            self._release(pair)
