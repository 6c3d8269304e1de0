"""
document_service.py - Adapter over the hosted document-QA service.

We do not parse or chunk the PDFs ourselves. Each upload is handed to the
Anthropic Files API once, and every question afterwards references the
stored file by id, so a 40-page tender is sent over the wire exactly once
no matter how many questions get asked against it.

One attempt per call. The SDK has its own small retry loop for transient
HTTP errors; we add nothing on top, and the submission workflow simply
picks up failed pairs on the next run.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Union

import anthropic

from tender_qa.config import AnthropicConfig
from tender_qa.errors import QueryError, UploadError, ValidationError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful assistant that answers questions based on document "
    "content accurately and concisely. The document is about public tenders. "
    "Please provide concise answers. If it is a conditional question, return "
    "just YES/NO. For invalid questions, return the answer Invalid question."
)

QUESTION_TEMPLATE = (
    "Based on the document provided, please answer the following question: "
    "{question}. Be accurate and concise."
)


class DocumentService(ABC):
    """What the rest of the package needs from a document-QA backend."""

    @abstractmethod
    def register(self, data: bytes, filename: str = "document.pdf") -> str:
        """Store raw PDF bytes remotely and return the external reference."""
        raise NotImplementedError

    @abstractmethod
    def ask(self, external_ids: Union[str, Sequence[str]], question: str) -> str:
        """Ask one question against one or more registered documents."""
        raise NotImplementedError

    @abstractmethod
    def release(self, external_id: str) -> bool:
        """Forget a registered document. Raises UploadError on failure."""
        raise NotImplementedError


def _normalize_ids(external_ids: Union[str, Sequence[str]]) -> List[str]:
    if isinstance(external_ids, str):
        ids = [external_ids]
    else:
        ids = [i for i in external_ids if i]
    if not ids or not all(ids):
        raise ValidationError("At least one document reference is required to ask a question.")
    return ids


def build_message_content(external_ids: Sequence[str], question: str) -> List[Dict[str, Any]]:
    """Instruction text first, then one document block per referenced file."""
    content: List[Dict[str, Any]] = [
        {"type": "text", "text": QUESTION_TEMPLATE.format(question=question)},
    ]
    for file_id in external_ids:
        content.append({
            "type": "document",
            "source": {"type": "file", "file_id": file_id},
        })
    return content


def extract_text(response: Any) -> str:
    """Join every non-empty text block, in the order the service sent them."""
    parts = []
    for block in getattr(response, "content", None) or []:
        if getattr(block, "type", None) == "text" and getattr(block, "text", None):
            parts.append(block.text)
    return "\n".join(parts)


class AnthropicDocumentService(DocumentService):
    """
    DocumentService backed by Anthropic's Files API beta and Messages API.

    Usage:
        service = AnthropicDocumentService(config.anthropic)
        ref = service.register(pdf_bytes, "tender.pdf")
        service.ask(ref, "What is the bid security amount?")
    """

    def __init__(self, settings: AnthropicConfig, client: Optional[anthropic.Anthropic] = None):
        self.settings = settings
        self._client = client

    def _require_client(self, error_cls) -> anthropic.Anthropic:
        if self._client is None and not self.settings.api_key:
            raise error_cls("ANTHROPIC_API_KEY is not configured.")
        return self.client

    @property
    def client(self) -> anthropic.Anthropic:
        # Built lazily so the API can start (and list records) without a key.
        if self._client is None:
            kwargs: Dict[str, Any] = {"api_key": self.settings.api_key}
            if self.settings.max_retries is not None:
                kwargs["max_retries"] = self.settings.max_retries
            self._client = anthropic.Anthropic(**kwargs)
            logger.info("Anthropic client initialized (model=%s, max_tokens=%d)",
                        self.settings.model, self.settings.max_tokens)
        return self._client

    def register(self, data: bytes, filename: str = "document.pdf") -> str:
        logger.info("Uploading %r to Anthropic (%d bytes)", filename, len(data))
        try:
            response = self._require_client(UploadError).beta.files.upload(
                file=(filename, data, "application/pdf"),
                betas=[self.settings.files_beta],
            )
        except anthropic.AnthropicError as exc:
            logger.error("Error uploading %r to Anthropic: %s", filename, exc)
            raise UploadError(f"Document service rejected {filename!r}: {exc}") from exc

        logger.info("Uploaded %r as %s", filename, response.id)
        return response.id

    def ask(self, external_ids: Union[str, Sequence[str]], question: str) -> str:
        ids = _normalize_ids(external_ids)
        logger.info("Asking question about %s (%d chars)", ", ".join(ids), len(question))
        try:
            response = self._require_client(QueryError).beta.messages.create(
                model=self.settings.model,
                max_tokens=self.settings.max_tokens,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": build_message_content(ids, question)}],
                betas=[self.settings.files_beta],
            )
        except anthropic.AnthropicError as exc:
            logger.error("Error asking question about %s: %s", ", ".join(ids), exc)
            raise QueryError(f"Document service failed to answer: {exc}") from exc

        answer = extract_text(response)
        logger.info("Received answer for %s (%d chars)", ", ".join(ids), len(answer))
        return answer

    def release(self, external_id: str) -> bool:
        try:
            self._require_client(UploadError).beta.files.delete(
                external_id, betas=[self.settings.files_beta]
            )
        except anthropic.NotFoundError:
            logger.info("External file %s was already gone", external_id)
            return False
        except anthropic.AnthropicError as exc:
            raise UploadError(f"Could not release external file {external_id}: {exc}") from exc
        logger.info("Released external file %s", external_id)
        return True
