"""
Document Indexing Service
═════════════════════════

Idempotent, audited indexing of ONE document:

  1. Look up the document and its parent case (tramite)
  2. Acquire text                → needs_ocr? stop, return status needs_ocr
  3. sha256(text) → IndexSignature
       exists & !force_reindex   → stop, return status skipped
       exists &  force_reindex   → delete that chunk set first
  4. Chunk with the configured chunking_version
  5. Embed every chunk, in order → any failure aborts the run
  6. Upsert the full chunk set in one batch (natural key = signature + chunk_index)
  7. Audit index_document/success

Result statuses:
  indexed     chunk set written
  skipped     signature already present, nothing written
  needs_ocr   no usable text; the caller decides (e.g. queue for manual OCR)

Fatal conditions (missing document, embedding failure, persistence failure)
raise PipelineError subclasses carrying the trace_id. Nothing is persisted
before step 6, so a failed run never leaves a partial chunk set behind.
"""

from __future__ import annotations

import hashlib
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any

from docpipeline.core.errors import DocumentNotFoundError, EmbeddingFailedError, PipelineError
from docpipeline.models.records import DocumentRecord, IndexSignature, PersistedChunkRecord
from docpipeline.observability.audit import ACTION_INDEXING, AuditEvent, AuditLogger, StageTimer
from docpipeline.observability.tracing import traced
from docpipeline.processing.chunking import DocumentChunker
from docpipeline.processing.embeddings import EmbeddingGenerator
from docpipeline.processing.extractor import DocumentTextExtractor
from docpipeline.repositories.chunks import ChunkRepository
from docpipeline.repositories.documents import DocumentRepository

logger = logging.getLogger(__name__)

__all__ = [
    "DocumentIndexingService",
    "IndexResult",
    "IndexSignature",
    "IndexStatus",
    "PersistedChunkRecord",
    "hash_text",
]


class IndexStatus(str, Enum):
    INDEXED   = "indexed"
    SKIPPED   = "skipped"
    NEEDS_OCR = "needs_ocr"


@dataclass
class IndexResult:
    chunks_created:     int
    embeddings_created: int
    status:             IndexStatus
    trace_id:           str
    extraction_source:  str | None = None
    needs_ocr_reason:   str | None = None
    document_hash:      str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "chunks_created":     self.chunks_created,
            "embeddings_created": self.embeddings_created,
            "status":             self.status.value,
            "trace_id":           self.trace_id,
        }
        if self.extraction_source is not None:
            data["extraction_source"] = self.extraction_source
        if self.needs_ocr_reason is not None:
            data["needs_ocr_reason"] = self.needs_ocr_reason
        return data


def hash_text(text: str) -> str:
    """SHA-256 hex digest of the acquired text (not of the raw file)."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class DocumentIndexingService:
    """
    Composes acquisition, chunking, embedding and persistence.

    All collaborators are injected; the service keeps no per-run state, so
    one instance can index any number of documents sequentially.
    """

    def __init__(
        self,
        documents:  DocumentRepository,
        extractor:  DocumentTextExtractor,
        chunker:    DocumentChunker,
        embeddings: EmbeddingGenerator,
        chunks:     ChunkRepository,
        audit:      AuditLogger,
    ) -> None:
        self._documents  = documents
        self._extractor  = extractor
        self._chunker    = chunker
        self._embeddings = embeddings
        self._chunks     = chunks
        self._audit      = audit

    @property
    def chunking_version(self) -> str:
        return self._chunker.params.chunking_version

    @traced("index_document")
    async def index_document(
        self,
        document_id:   str,
        force_reindex: bool = False,
        trace_id:      str | None = None,
        user_id:       str | None = None,
    ) -> IndexResult:
        trace_id = trace_id or str(uuid.uuid4())
        total    = StageTimer()
        model    = self._embeddings.model

        run = _RunContext(self._audit, trace_id, user_id, document_id)

        try:
            document = await self._documents.find_by_id(document_id)
            if document is None:
                raise DocumentNotFoundError("document_not_found", details={"document_id": document_id})

            run.tramite_id = await self._documents.find_tramite_id(document_id)
            await run.emit("index_document", "start", None, {
                "force_reindex":    force_reindex,
                "chunking_version": self.chunking_version,
                "embedding_model":  model,
            })

            # ── Text acquisition ─────────────────────────────────────────
            stage      = StageTimer()
            extraction = await self._extractor.extract(document)
            source     = extraction.source.value

            if extraction.needs_ocr or not extraction.text.strip():
                reason = extraction.reason or "text_not_usable"
                await run.emit("extract_text", "needs_ocr", stage.elapsed_ms, {
                    "source": source, "reason": reason,
                })
                logger.info(
                    "Indexing | trace=%s doc=%s status=needs_ocr reason=%s",
                    trace_id, document_id, reason,
                )
                return IndexResult(
                    chunks_created=0, embeddings_created=0,
                    status=IndexStatus.NEEDS_OCR, trace_id=trace_id,
                    extraction_source=source, needs_ocr_reason=reason,
                )

            await run.emit("extract_text", "success", stage.elapsed_ms, {"source": source})

            # ── Idempotency ──────────────────────────────────────────────
            signature = IndexSignature(
                document_id=document_id,
                document_hash=hash_text(extraction.text),
                chunking_version=self.chunking_version,
                embedding_model=model,
            )
            already_indexed = await self._chunks.exists_signature(signature)

            if already_indexed and not force_reindex:
                await run.emit("idempotency", "skipped", None, {
                    "reason":        "already_indexed",
                    "document_hash": signature.document_hash,
                })
                logger.info(
                    "Indexing | trace=%s doc=%s status=skipped hash=%s",
                    trace_id, document_id, signature.document_hash[:12],
                )
                return IndexResult(
                    chunks_created=0, embeddings_created=0,
                    status=IndexStatus.SKIPPED, trace_id=trace_id,
                    extraction_source=source, document_hash=signature.document_hash,
                )

            if already_indexed:
                await self._chunks.delete_signature(signature)

            # ── Chunking ─────────────────────────────────────────────────
            stage  = StageTimer()
            chunks = self._chunker.chunk(
                extraction.text, doc_meta={"extractor_source": source},
            )
            await run.emit("chunking", "success", stage.elapsed_ms, {"chunk_count": len(chunks)})

            # ── Embedding ────────────────────────────────────────────────
            stage = StageTimer()
            records: list[PersistedChunkRecord] = []
            for chunk in chunks:
                vector = await self._embeddings.generate(chunk.content)
                if not vector:
                    raise EmbeddingFailedError(chunk.index, trace_id=trace_id)
                records.append(PersistedChunkRecord(
                    signature=signature,
                    chunk_index=chunk.index,
                    content=chunk.content,
                    token_count=chunk.token_count,
                    embedding=vector,
                    embedding_dimensions=self._embeddings.dimensions,
                    metadata={**chunk.metadata, "trace_id": trace_id},
                    tramite_id=run.tramite_id,
                ))
            await run.emit("embedding", "success", stage.elapsed_ms, {
                "chunk_count": len(records), "embedding_model": model,
            })

            # ── Persist ──────────────────────────────────────────────────
            stage = StageTimer()
            await self._chunks.upsert(records)
            await run.emit("persist", "success", stage.elapsed_ms, {
                "chunk_count":     len(records),
                "embedding_model": model,
                "document_hash":   signature.document_hash,
            })

            await run.emit("index_document", "success", total.elapsed_ms, {
                "chunk_count": len(records), "embedding_model": model,
            })
            logger.info(
                "Indexing | trace=%s doc=%s status=indexed chunks=%d model=%s elapsed_ms=%d",
                trace_id, document_id, len(records), model, total.elapsed_ms,
            )
            return IndexResult(
                chunks_created=len(records), embeddings_created=len(records),
                status=IndexStatus.INDEXED, trace_id=trace_id,
                extraction_source=source, document_hash=signature.document_hash,
            )

        except Exception as exc:
            if isinstance(exc, PipelineError) and exc.trace_id is None:
                exc.trace_id = trace_id
            code = exc.code if isinstance(exc, PipelineError) else "indexing_error"
            await run.emit("index_document", "error", total.elapsed_ms, {
                "error_code":    code,
                "error_message": str(exc) or "indexing_error",
            })
            logger.error(
                "Indexing | trace=%s doc=%s status=error code=%s error=%s",
                trace_id, document_id, code, exc,
            )
            raise


class _RunContext:
    """Audit identity of one indexing run."""

    def __init__(
        self,
        audit:       AuditLogger,
        trace_id:    str,
        user_id:     str | None,
        document_id: str,
    ) -> None:
        self._audit      = audit
        self.trace_id    = trace_id
        self.user_id     = user_id
        self.document_id = document_id
        self.tramite_id: str | None = None

    async def emit(
        self,
        stage:       str,
        status:      str,
        duration_ms: int | None,
        metadata:    dict[str, Any],
    ) -> None:
        await self._audit.log(AuditEvent(
            trace_id=self.trace_id,
            stage=stage,
            status=status,
            duration_ms=duration_ms,
            metadata=metadata,
            user_id=self.user_id,
            documento_id=self.document_id,
            tramite_id=self.tramite_id,
            action_type=ACTION_INDEXING,
        ))
