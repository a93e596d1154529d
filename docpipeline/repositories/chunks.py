"""
Chunk Persistence
═════════════════

Port + PostgreSQL implementation for persisted chunk sets.

  exists_signature(sig)   any row for the four-tuple IndexSignature?
  delete_signature(sig)   remove that chunk set (force reindex)
  upsert(records)         INSERT ... ON CONFLICT (natural key) DO UPDATE

The whole batch is written in one transaction: an indexing run commits a
complete chunk set or nothing. Concurrent writers of the same signature
converge: last successful writer wins per chunk_index.

Every database error is re-raised as PersistenceError with a stable code.
"""

from __future__ import annotations

import logging
import time
import uuid
from abc import ABC, abstractmethod
from typing import Sequence

from sqlalchemy import delete, exists, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docpipeline.core.errors import PersistenceError
from docpipeline.db.session import AsyncSessionLocal, session_scope
from docpipeline.models.documents import DocumentTextChunk
from docpipeline.models.records import IndexSignature, PersistedChunkRecord

logger = logging.getLogger(__name__)


class ChunkRepository(ABC):

    @abstractmethod
    async def exists_signature(self, signature: IndexSignature) -> bool: ...

    @abstractmethod
    async def delete_signature(self, signature: IndexSignature) -> int:
        """Delete the chunk set; returns the number of rows removed."""

    @abstractmethod
    async def upsert(self, records: Sequence[PersistedChunkRecord]) -> int:
        """Upsert every record in one batch; returns the number of rows written."""


def _signature_filter(signature: IndexSignature) -> tuple:
    return (
        DocumentTextChunk.documento_id     == uuid.UUID(signature.document_id),
        DocumentTextChunk.document_hash    == signature.document_hash,
        DocumentTextChunk.chunking_version == signature.chunking_version,
        DocumentTextChunk.embedding_model  == signature.embedding_model,
    )


def _row(record: PersistedChunkRecord) -> dict:
    sig = record.signature
    return {
        "documento_id":         uuid.UUID(sig.document_id),
        "tramite_id":           uuid.UUID(record.tramite_id) if record.tramite_id else None,
        "session_id":           record.session_id,
        "page_number":          record.page_number,
        "chunk_index":          record.chunk_index,
        "text":                 record.content,
        "content":              record.content,
        "token_count":          record.token_count,
        "metadata":             record.metadata,
        "embedding":            record.embedding,
        "document_hash":        sig.document_hash,
        "chunking_version":     sig.chunking_version,
        "embedding_model":      sig.embedding_model,
        "embedding_dimensions": record.embedding_dimensions,
    }


class SQLChunkRepository(ChunkRepository):
    """PostgreSQL implementation over `documento_text_chunks`."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_factory = session_factory or AsyncSessionLocal

    async def exists_signature(self, signature: IndexSignature) -> bool:
        stmt = select(exists().where(*_signature_filter(signature)))
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return bool(result.scalar())
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"index lookup failed: {exc}", code="index_lookup_failed",
                details=signature.as_dict(),
            ) from exc

    async def delete_signature(self, signature: IndexSignature) -> int:
        stmt = delete(DocumentTextChunk).where(*_signature_filter(signature))
        try:
            async with session_scope(self._session_factory) as session:
                result = await session.execute(stmt)
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"index delete failed: {exc}", code="index_delete_failed",
                details=signature.as_dict(),
            ) from exc

        logger.info(
            "ChunkRepository | delete doc=%s hash=%s rows=%d",
            signature.document_id, signature.document_hash[:12], result.rowcount,
        )
        return result.rowcount or 0

    async def upsert(self, records: Sequence[PersistedChunkRecord]) -> int:
        if not records:
            return 0

        t0   = time.monotonic()
        stmt = pg_insert(DocumentTextChunk.__table__).values([_row(r) for r in records])
        stmt = stmt.on_conflict_do_update(
            constraint="uq_documento_text_chunks_natural_key",
            set_={
                "tramite_id":           stmt.excluded["tramite_id"],
                "session_id":           stmt.excluded["session_id"],
                "page_number":          stmt.excluded["page_number"],
                "text":                 stmt.excluded["text"],
                "content":              stmt.excluded["content"],
                "token_count":          stmt.excluded["token_count"],
                "metadata":             stmt.excluded["metadata"],
                "embedding":            stmt.excluded["embedding"],
                "embedding_dimensions": stmt.excluded["embedding_dimensions"],
            },
        )

        try:
            async with session_scope(self._session_factory) as session:
                await session.execute(stmt)
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"chunk upsert failed: {exc}", code="chunk_upsert_failed",
                details=records[0].signature.as_dict(),
            ) from exc

        logger.info(
            "ChunkRepository | upsert doc=%s rows=%d elapsed_ms=%.0f",
            records[0].signature.document_id, len(records),
            (time.monotonic() - t0) * 1000,
        )
        return len(records)
