"""
errors.py - Exception taxonomy.

Each error carries the HTTP status the API layer answers with, so route
handlers never need their own try/except blocks. Nothing here retries;
callers decide.
"""

from __future__ import annotations


class TenderQAError(Exception):
    """Base class for every error this package raises on purpose."""
    status_code = 500


class ValidationError(TenderQAError):
    """Bad input shape: empty question text, non-PDF upload, oversize file."""
    status_code = 400


class StorageError(TenderQAError):
    """The record document could not be read or written."""
    status_code = 500


class UploadError(TenderQAError):
    """The document service rejected or never received a file."""
    status_code = 502


class QueryError(TenderQAError):
    """The document service failed to answer a question."""
    status_code = 502


class NoFilesError(TenderQAError):
    """Submission was triggered with no files on record."""
    status_code = 404

    def __init__(self, message: str = "No files uploaded yet. Upload a PDF before submitting."):
        super().__init__(message)
