"""
SQLAlchemy ORM Models — Documents, Text Chunks & Activity Log

Using SQLAlchemy 2.x mapped classes for full async support.

Tables:
  documentos             — uploaded files (read-only for this pipeline)
  tramite_documentos     — link between a document and its parent case
  documento_text_chunks  — persisted chunk set, one row per (signature, chunk_index)
  activity_logs          — append-only audit trail of every pipeline stage
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Declarative base: shared across all models
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Document model: documentos
# ---------------------------------------------------------------------------

class Document(Base):
    """
    A stored file. Immutable from the pipeline's point of view.

    doc_metadata may hold a previously captured text payload (manual OCR
    pass or import) under rawText / ocrText / text / textoCompleto.
    """

    __tablename__ = "documentos"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )
    nombre: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Original filename, used as a format hint (.pdf / .docx)",
    )
    mime_type: Mapped[str] = mapped_column(Text, nullable=False)
    s3_key: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Object key in the documents bucket; NULL when never uploaded",
    )
    doc_metadata: Mapped[Optional[dict]] = mapped_column(
        "metadata",                 # PostgreSQL column name stays 'metadata'
        JSONB,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Document id={self.id} mime={self.mime_type!r} file={self.nombre!r}>"


class TramiteDocument(Base):
    """Link table: which parent case (tramite) a document belongs to."""

    __tablename__ = "tramite_documentos"
    __table_args__ = (
        UniqueConstraint("tramite_id", "documento_id", name="uq_tramite_documentos"),
        Index("idx_tramite_documentos_documento_id", "documento_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    tramite_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    documento_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("documentos.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


# ---------------------------------------------------------------------------
# Chunk model: documento_text_chunks
# ---------------------------------------------------------------------------

class DocumentTextChunk(Base):
    """
    One embedded chunk of a document's acquired text.

    The natural key is (documento_id, chunking_version, embedding_model,
    chunk_index, document_hash): re-running an identical indexing job
    upserts in place instead of duplicating rows.
    """

    __tablename__ = "documento_text_chunks"
    __table_args__ = (
        UniqueConstraint(
            "documento_id", "chunking_version", "embedding_model",
            "chunk_index", "document_hash",
            name="uq_documento_text_chunks_natural_key",
        ),
        Index(
            "idx_documento_text_chunks_signature",
            "documento_id", "document_hash", "chunking_version", "embedding_model",
        ),
        Index("idx_documento_text_chunks_tramite_id", "tramite_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)

    documento_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("documentos.id", ondelete="CASCADE"),
        nullable=False,
    )
    tramite_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    session_id: Mapped[Optional[str]]       = mapped_column(Text, nullable=True)

    page_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    text:        Mapped[str] = mapped_column(Text, nullable=False)
    content:     Mapped[str] = mapped_column(Text, nullable=False)
    token_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    chunk_metadata: Mapped[dict] = mapped_column(
        "metadata",
        JSONB,
        nullable=False,
        default=dict,
        server_default="{}",
    )
    embedding: Mapped[list[float]] = mapped_column(ARRAY(Float), nullable=False)

    # Index signature
    document_hash:        Mapped[str] = mapped_column(Text, nullable=False)
    chunking_version:     Mapped[str] = mapped_column(Text, nullable=False)
    embedding_model:      Mapped[str] = mapped_column(Text, nullable=False)
    embedding_dimensions: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


# ---------------------------------------------------------------------------
# ActivityLog model: activity_logs
# ---------------------------------------------------------------------------

class ActivityLog(Base):
    """
    Append-only audit trail of indexing and extraction stages.

    One row per stage transition: enough to reconstruct why a document
    was indexed, skipped, sent to OCR, or why an extraction failed after
    N attempts.
    """

    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("idx_activity_logs_trace_id",   "trace_id"),
        Index("idx_activity_logs_documento",  "documento_id"),
        Index("idx_activity_logs_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)

    trace_id:     Mapped[str]                 = mapped_column(Text, nullable=False)
    user_id:      Mapped[Optional[str]]       = mapped_column(Text, nullable=True)
    documento_id: Mapped[Optional[str]]       = mapped_column(Text, nullable=True)
    tramite_id:   Mapped[Optional[str]]       = mapped_column(Text, nullable=True)

    action_type: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="document_indexing | document_extraction",
    )
    stage:       Mapped[str]           = mapped_column(Text, nullable=False)
    status:      Mapped[str]           = mapped_column(Text, nullable=False)
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    event_metadata: Mapped[dict] = mapped_column(
        "metadata",
        JSONB,
        nullable=False,
        default=dict,
        server_default="{}",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<ActivityLog id={self.id} trace={self.trace_id} "
            f"stage={self.stage!r} status={self.status!r}>"
        )
