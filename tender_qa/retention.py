"""
retention.py - Keep the N most recent uploads, evict the rest.

Selection is a pure function so the store can apply it inside its lock
and tests can exercise it without touching disk. The two cleanup helpers
are best-effort: a file we fail to delete is logged and forgotten, it
never fails the upload that triggered the eviction.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, List, Sequence, Tuple

from tender_qa.errors import UploadError
from tender_qa.schemas import FileRecord

if TYPE_CHECKING:
    from tender_qa.document_service import DocumentService

logger = logging.getLogger(__name__)

DEFAULT_KEEP = 3


def select_evictions(
    files: Sequence[FileRecord],
    keep: int = DEFAULT_KEEP,
) -> Tuple[List[FileRecord], List[FileRecord]]:
    """
    Split files into (kept, evicted).

    Newest createdAt wins. Two files created in the same microsecond are
    ordered by position, the later one counting as newer. `kept` comes
    back in the original insertion order so listings stay stable.
    """
    if keep < 0:
        raise ValueError(f"keep must be >= 0, got {keep}")

    ranked = sorted(
        enumerate(files),
        key=lambda pair: (pair[1].created_at, pair[0]),
        reverse=True,
    )
    keep_positions = {pos for pos, _ in ranked[:keep]}

    kept = [f for pos, f in enumerate(files) if pos in keep_positions]
    evicted = [f for pos, f in ranked[keep:]]
    return kept, evicted


def purge_local_copies(evicted: Sequence[FileRecord]) -> int:
    """Delete cached PDF bytes of evicted files. Returns how many went."""
    removed = 0
    for record in evicted:
        if not record.local_path:
            continue
        try:
            os.remove(record.local_path)
            removed += 1
            logger.info("Removed cached copy %s of evicted file %s",
                        record.local_path, record.id)
        except FileNotFoundError:
            logger.debug("Cached copy %s already gone", record.local_path)
        except OSError as exc:
            logger.warning("Could not remove cached copy %s of file %s: %s",
                           record.local_path, record.id, exc)
    return removed


def release_external(service: "DocumentService", evicted: Sequence[FileRecord]) -> int:
    """Ask the document service to forget evicted files. Returns successes."""
    released = 0
    for record in evicted:
        try:
            if service.release(record.external_id):
                released += 1
        except UploadError as exc:
            logger.warning("Could not release external file %s (file %s): %s",
                           record.external_id, record.id, exc)
    return released
