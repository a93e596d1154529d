"""
Document lookup — read-only access to stored documents and their parent case.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docpipeline.db.session import AsyncSessionLocal
from docpipeline.models.documents import Document, TramiteDocument
from docpipeline.models.records import DocumentRecord

logger = logging.getLogger(__name__)


def _as_uuid(value: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError):
        return None


class DocumentRepository(ABC):

    @abstractmethod
    async def find_by_id(self, document_id: str) -> DocumentRecord | None:
        """Return the document, or None if it does not exist."""

    @abstractmethod
    async def find_tramite_id(self, document_id: str) -> str | None:
        """Return the parent case id the document was first linked to, if any."""


class SQLDocumentRepository(DocumentRepository):
    """SQLAlchemy implementation over the `documentos` / `tramite_documentos` tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_factory = session_factory or AsyncSessionLocal

    async def find_by_id(self, document_id: str) -> DocumentRecord | None:
        doc_uuid = _as_uuid(document_id)
        if doc_uuid is None:
            return None

        async with self._session_factory() as session:
            row = await session.get(Document, doc_uuid)

        if row is None:
            return None
        return DocumentRecord(
            id=str(row.id),
            filename=row.nombre,
            mime_type=row.mime_type,
            storage_key=row.s3_key,
            metadata=row.doc_metadata,
        )

    async def find_tramite_id(self, document_id: str) -> str | None:
        doc_uuid = _as_uuid(document_id)
        if doc_uuid is None:
            return None

        stmt = (
            select(TramiteDocument.tramite_id)
            .where(TramiteDocument.documento_id == doc_uuid)
            .order_by(TramiteDocument.created_at.asc())
            .limit(1)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            tramite_id = result.scalar_one_or_none()

        return str(tramite_id) if tramite_id else None
