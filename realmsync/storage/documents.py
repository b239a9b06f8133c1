"""Document collaborator: source text plus processing status."""

from __future__ import annotations

import time
import uuid
from enum import Enum
from typing import Dict, Optional, Protocol

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field


class ProcessingStatus(str, Enum):
    """Extraction lifecycle of a document."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Document(BaseModel):
    """A narrative document owned by a project."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    project_id: str
    title: str = ""
    content: str = ""
    processing_status: ProcessingStatus = ProcessingStatus.PENDING
    processed_at: Optional[int] = None
    updated_at: Optional[int] = None


class DocumentStore(Protocol):
    async def get_document(self, document_id: str) -> Optional[Document]: ...

    async def update_processing_status(
        self, document_id: str, status: ProcessingStatus
    ) -> None: ...


class InMemoryDocumentStore:
    """Dict-backed document store."""

    def __init__(self) -> None:
        self._documents: Dict[str, Document] = {}

    def add(self, document: Document) -> Document:
        self._documents[document.id] = document
        return document

    async def get_document(self, document_id: str) -> Optional[Document]:
        return self._documents.get(document_id)

    async def update_processing_status(self, document_id: str, status: ProcessingStatus) -> None:
        document = self._documents.get(document_id)
        if document is None:
            logger.warning("Status update for unknown document {}", document_id)
            return
        now = int(time.time() * 1000)
        update: Dict[str, object] = {"processing_status": status, "updated_at": now}
        if status == ProcessingStatus.COMPLETED:
            update["processed_at"] = now
        self._documents[document_id] = document.model_copy(update=update)
        logger.debug("Document {} -> {}", document_id, status.value)
