"""
schemas.py - Pydantic v2 models for the record document and the API.

The JSON document on disk uses camelCase keys because the UI reads the
API responses verbatim and we did not want two naming schemes. Python
code uses snake_case attribute names; aliases bridge the two, so always
dump with by_alias=True when writing to disk or to the wire.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class Answer(_Record):
    """One question answered against one file. Immutable once stored."""
    question_id: str = Field(..., alias="questionId")
    question: str = Field(..., description="Question text at the time of asking")
    answer: str
    created_at: str = Field(..., alias="createdAt")


class Question(_Record):
    id: str
    text: str
    created_at: str = Field(..., alias="createdAt")

    @field_validator("text")
    @classmethod
    def text_must_not_be_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("question text cannot be empty or whitespace")
        return v


class FileRecord(_Record):
    """
    An uploaded PDF. `external_id` is the document-service handle and is
    never exposed as our own id.
    """
    id: str
    external_id: str = Field(..., alias="externalId")
    original_name: str = Field(..., alias="originalName")
    size: int = Field(default=0, ge=0)
    pages: int = Field(default=0, ge=0)
    local_path: Optional[str] = Field(default=None, alias="localPath")
    created_at: str = Field(..., alias="createdAt")
    answers: List[Answer] = Field(default_factory=list)

    def answer_for(self, question_id: str) -> Optional[Answer]:
        for answer in self.answers:
            if answer.question_id == question_id:
                return answer
        return None


class Database(BaseModel):
    """Top-level shape of data/db.json."""
    questions: List[Question] = Field(default_factory=list)
    files: List[FileRecord] = Field(default_factory=list)


# API models

class QuestionAnswer(_Record):
    """An answer as seen from the question side."""
    file_id: str = Field(..., alias="fileId")
    file_name: str = Field(..., alias="fileName")
    answer: str
    created_at: str = Field(..., alias="createdAt")


class QuestionView(_Record):
    id: str
    text: str
    created_at: str = Field(..., alias="createdAt")
    answers: List[QuestionAnswer] = Field(default_factory=list)


class FileView(_Record):
    id: str
    original_name: str = Field(..., alias="originalName")
    size: int
    pages: int
    created_at: str = Field(..., alias="createdAt")
    answers: List[Answer] = Field(default_factory=list)

    @classmethod
    def from_record(cls, record: FileRecord) -> "FileView":
        return cls(
            id=record.id,
            original_name=record.original_name,
            size=record.size,
            pages=record.pages,
            created_at=record.created_at,
            answers=list(record.answers),
        )


class UploadResult(_Record):
    id: str
    original_name: str = Field(..., alias="originalName")
    duplicate: bool = False


class PairFailure(_Record):
    file_id: str = Field(..., alias="fileId")
    question_id: str = Field(..., alias="questionId")
    error: str


class SubmissionReport(_Record):
    """What one submission run did. Failed pairs are retried next run."""
    files: int = 0
    questions: int = 0
    attempted: int = 0
    answered: int = 0
    skipped: int = 0
    failed: List[PairFailure] = Field(default_factory=list)
