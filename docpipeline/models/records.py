"""
Plain pipeline records — decoupled from the ORM so every pipeline
component can be exercised without a database.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class DocumentRecord:
    """
    A stored document as the pipeline sees it.

    id           : document identifier (string form of the UUID)
    filename     : original filename, used as a format hint
    mime_type    : MIME type recorded at upload
    storage_key  : object key in blob storage; None if never uploaded
    metadata     : cached metadata, may carry a previously captured text payload
    """
    id:          str
    filename:    str
    mime_type:   str
    storage_key: str | None = None
    metadata:    dict[str, Any] | None = field(default=None, hash=False, compare=False)


@dataclass(frozen=True)
class IndexSignature:
    """
    Idempotency key of an indexing run.

    A document counts as indexed under a configuration iff a persisted chunk
    set exists for this exact tuple. Used unchanged for the existence check,
    the force-reindex delete and every upserted row.
    """
    document_id:      str
    document_hash:    str
    chunking_version: str
    embedding_model:  str

    def as_dict(self) -> dict[str, str]:
        return {
            "document_id":      self.document_id,
            "document_hash":    self.document_hash,
            "chunking_version": self.chunking_version,
            "embedding_model":  self.embedding_model,
        }


@dataclass(frozen=True)
class PersistedChunkRecord:
    """
    One row of a chunk set, ready for upsert.

    Natural key: (document_id, chunking_version, embedding_model,
    chunk_index, document_hash), i.e. signature + chunk_index.
    """
    signature:            IndexSignature
    chunk_index:          int
    content:              str
    token_count:          int
    embedding:            list[float] = field(hash=False, compare=False)
    embedding_dimensions: int
    metadata:             dict[str, Any] = field(default_factory=dict, hash=False, compare=False)
    tramite_id:           str | None = None
    session_id:           str | None = None
    page_number:          int = 1

    @property
    def natural_key(self) -> tuple[str, str, str, int, str]:
        sig = self.signature
        return (
            sig.document_id, sig.chunking_version, sig.embedding_model,
            self.chunk_index, sig.document_hash,
        )
