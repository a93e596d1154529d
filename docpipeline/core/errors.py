"""
Pipeline error hierarchy.

Only fatal conditions are exceptions. Expected terminal states of the
indexing pipeline (needs_ocr, skipped) are returned as result values.

Every error carries a stable machine-readable `code` and, when known, the
audit `trace_id` so callers can correlate a failure with its audit trail.
"""

from __future__ import annotations

from typing import Any


class PipelineError(Exception):
    """Base class for every fatal pipeline error."""

    code: str = "pipeline_error"

    def __init__(
        self,
        message: str,
        *,
        code:     str | None = None,
        trace_id: str | None = None,
        details:  dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message  = message
        self.code     = code or self.code
        self.trace_id = trace_id
        self.details  = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "code":     self.code,
            "message":  self.message,
            "trace_id": self.trace_id,
            "details":  self.details,
        }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} code={self.code!r} trace_id={self.trace_id!r}>"


class DocumentNotFoundError(PipelineError):
    code = "document_not_found"


class EmbeddingFailedError(PipelineError):
    """An embedding could not be generated; the whole indexing run is aborted."""

    code = "embedding_failed"

    def __init__(self, chunk_index: int, *, trace_id: str | None = None) -> None:
        super().__init__(
            f"embedding_failed_for_chunk_{chunk_index}",
            trace_id=trace_id,
            details={"chunk_index": chunk_index},
        )
        self.chunk_index = chunk_index


class PersistenceError(PipelineError):
    code = "persistence_failed"


class ExtractionInputError(PipelineError):
    code = "invalid_extraction_input"


class AIOutputInvalidError(PipelineError):
    """The language model never produced schema-valid output within the attempt budget."""

    code = "AI_OUTPUT_INVALID"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        super().__init__(message, trace_id=details.get("trace_id"), details=details)

    @property
    def attempts(self) -> int:
        return int(self.details.get("attempts", 0))
