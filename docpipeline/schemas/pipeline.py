"""
Pipeline HTTP — Pydantic Request/Response Schemas

Covers:
  POST /api/v1/documents/{document_id}/index
  POST /api/v1/tramites/{tramite_id}/extract
  and the uniform error envelope returned on every 4xx/5xx.

Design decisions:
  - needs_ocr and skipped are 200 responses: they are outcomes, not errors.
  - request_id in error bodies is the pipeline trace_id whenever one exists,
    so a client can quote it to find the audit trail.
"""

from __future__ import annotations

from typing import Any

from fastapi import status
from pydantic import BaseModel, Field

from docpipeline.core.errors import (
    AIOutputInvalidError,
    DocumentNotFoundError,
    EmbeddingFailedError,
    ExtractionInputError,
    PersistenceError,
    PipelineError,
)


# ---------------------------------------------------------------------------
# Indexing
# ---------------------------------------------------------------------------

class IndexDocumentRequest(BaseModel):
    force_reindex: bool       = Field(False, description="Delete and rebuild an existing chunk set")
    trace_id:      str | None = Field(None, description="Audit trace id; generated when absent")
    user_id:       str | None = Field(None, description="Acting user, recorded in the audit trail")


class IndexDocumentResponse(BaseModel):
    status:             str = Field(..., description="indexed | skipped | needs_ocr")
    chunks_created:     int
    embeddings_created: int
    trace_id:           str
    extraction_source:  str | None = None
    needs_ocr_reason:   str | None = None


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

class ExtractRequest(BaseModel):
    document_id: str
    domain_type: str            = Field("preaviso", description="Registered extraction domain")
    raw_text:    str            = Field(..., description="Text already acquired for the document")
    file_meta:   dict[str, Any] = Field(default_factory=dict)
    user_id:     str | None     = None
    trace_id:    str | None     = None


class SourceRefOut(BaseModel):
    field:    str
    evidence: str


class ExtractResponse(BaseModel):
    structured:  dict[str, Any]
    confidence:  float | None = None
    warnings:    list[str] = Field(default_factory=list)
    source_refs: list[SourceRefOut] = Field(default_factory=list)
    trace_id:    str


# ---------------------------------------------------------------------------
# Structured error bodies
# ---------------------------------------------------------------------------

class ErrorDetail(BaseModel):
    """Single structured error — may appear in a list."""
    field:   str | None = Field(None, description="Request field or schema path, if applicable")
    message: str
    code:    str        = Field(..., description="Machine-readable error code for client handling")


class ErrorResponse(BaseModel):
    """
    Uniform error envelope for all 4xx/5xx responses.
    Clients should check `error_code` for programmatic handling.
    """
    error_code: str               = Field(..., description="Stable machine-readable code")
    message:    str               = Field(..., description="Human-readable summary")
    details:    list[ErrorDetail] = Field(default_factory=list)
    request_id: str | None        = Field(None, description="Trace ID for audit / log correlation")


class PipelineErrors:
    """Maps pipeline exceptions to (HTTP status, ErrorResponse)."""

    @staticmethod
    def status_for(exc: PipelineError) -> int:
        if isinstance(exc, DocumentNotFoundError):
            return status.HTTP_404_NOT_FOUND
        if isinstance(exc, ExtractionInputError):
            return status.HTTP_422_UNPROCESSABLE_ENTITY
        if isinstance(exc, (AIOutputInvalidError, EmbeddingFailedError)):
            return status.HTTP_502_BAD_GATEWAY
        if isinstance(exc, PersistenceError):
            return status.HTTP_503_SERVICE_UNAVAILABLE
        return status.HTTP_500_INTERNAL_SERVER_ERROR

    @staticmethod
    def from_exception(exc: PipelineError) -> ErrorResponse:
        details: list[ErrorDetail] = []
        if isinstance(exc, AIOutputInvalidError):
            for issue in exc.details.get("issues", []):
                path, _, message = issue.partition(": ")
                details.append(ErrorDetail(field=path, message=message or issue, code=exc.code))
            if "cause" in exc.details:
                details.append(ErrorDetail(message=str(exc.details["cause"]), code=exc.code))
        return ErrorResponse(
            error_code=exc.code,
            message=exc.message,
            details=details,
            request_id=exc.trace_id,
        )

    @staticmethod
    def internal_error(request_id: str | None = None) -> ErrorResponse:
        return ErrorResponse(
            error_code="INTERNAL_ERROR",
            message="An unexpected error occurred.",
            request_id=request_id,
        )
