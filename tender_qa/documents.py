"""
documents.py - Intake for uploaded tender PDFs.

An upload goes through four steps:
  1. Reject anything that is not a PDF, is empty, or is over the size cap
  2. Short-circuit if we already hold a file with that name
  3. Open it with pdfplumber to make sure it is a readable PDF (and count
     pages for the file table)
  4. Register the bytes with the document service, cache a local copy,
     record it in the store (which applies retention)

The pdfplumber check exists because the document service happily accepts
a renamed .docx with an application/pdf header and then fails every
single question asked against it. Catching that at upload time gives
the user an error they can act on.
"""

from __future__ import annotations

import io
import logging
import uuid
from pathlib import Path
from typing import Optional

import pdfplumber

from tender_qa.document_service import DocumentService
from tender_qa.errors import StorageError, UploadError, ValidationError
from tender_qa.schemas import UploadResult
from tender_qa.store import RecordStore

logger = logging.getLogger(__name__)

PDF_MIMETYPE = "application/pdf"


def validate_upload(data: bytes, content_type: Optional[str], max_file_size_mb: int) -> None:
    """
    Raises:
        ValidationError: wrong mimetype, empty body, or file too large.
    """
    if content_type != PDF_MIMETYPE:
        raise ValidationError("No file uploaded or file is not a PDF.")
    if not data:
        raise ValidationError("Uploaded file is empty.")
    size_mb = len(data) / (1024 * 1024)
    if size_mb > max_file_size_mb:
        raise ValidationError(
            f"File too large: {size_mb:.1f} MB (limit: {max_file_size_mb} MB)"
        )


def count_pages(data: bytes) -> int:
    """Open the PDF in memory and return its page count."""
    try:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            return len(pdf.pages)
    except Exception as exc:
        # pdfminer raises a zoo of exception types for broken or encrypted
        # files; all of them mean the same thing to the uploader.
        raise ValidationError(f"File is not a readable PDF: {exc}") from exc


def safe_filename(filename: Optional[str]) -> str:
    name = Path(filename or "").name.strip()
    return name or "document.pdf"


def _cache_copy(upload_dir: str, data: bytes) -> Optional[str]:
    target = Path(upload_dir) / f"file-{uuid.uuid4().hex}.pdf"
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
    except OSError as exc:
        logger.warning("Could not cache upload at %s: %s", target, exc)
        return None
    return str(target)


def _discard(service: DocumentService, external_id: str, local_path: Optional[str]) -> None:
    if local_path:
        Path(local_path).unlink(missing_ok=True)
    try:
        service.release(external_id)
    except UploadError as exc:
        logger.warning("Could not release unused external file %s: %s", external_id, exc)


def ingest_upload(
    store: RecordStore,
    service: DocumentService,
    data: bytes,
    filename: Optional[str],
    content_type: Optional[str],
    upload_dir: str = "uploads",
    max_file_size_mb: int = 50,
) -> UploadResult:
    """
    Turn an uploaded PDF into a File record.

    Raises:
        ValidationError: the upload is not an acceptable PDF.
        UploadError: the document service did not take the file.
        StorageError: the record document could not be written.
    """
    validate_upload(data, content_type, max_file_size_mb)
    name = safe_filename(filename)

    existing = store.find_file_by_name(name)
    if existing is not None:
        logger.info("Upload of %r matches existing file %s, not re-registering",
                    name, existing.id)
        return UploadResult(id=existing.id, original_name=name, duplicate=True)

    pages = count_pages(data)
    external_id = service.register(data, name)
    local_path = _cache_copy(upload_dir, data)

    try:
        file_id = store.add_file(
            external_id=external_id,
            original_name=name,
            size=len(data),
            pages=pages,
            local_path=local_path,
        )
    except StorageError:
        _discard(service, external_id, local_path)
        raise

    record = store.get_file(file_id)
    if record is None:
        _discard(service, external_id, local_path)
        raise StorageError(f"File {file_id} was not kept after recording {name!r}")
    if record.external_id != external_id:
        # Another request recorded the same name while we were uploading.
        logger.info("Concurrent upload of %r already recorded as %s", name, file_id)
        _discard(service, external_id, local_path)
        return UploadResult(id=file_id, original_name=name, duplicate=True)

    logger.info("Upload %r stored as %s (%d pages)", name, file_id, pages)
    return UploadResult(id=file_id, original_name=name)
