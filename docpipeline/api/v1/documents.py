"""
Document Pipeline API — thin HTTP surface over the pipeline services

Endpoints:
  POST /documents/{document_id}/index   idempotent indexing of one document
  POST /tramites/{tramite_id}/extract   structured extraction from acquired text

Pipeline exceptions propagate to the app-level PipelineError handler,
which renders them as ErrorResponse bodies carrying the trace id.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import APIRouter, Depends, status

from docpipeline.extraction import ExtractionAgent, ExtractionInput
from docpipeline.llm import ChatOpenAIClient
from docpipeline.observability import DBAuditLogger
from docpipeline.processing import (
    DocumentChunker,
    DocumentTextExtractor,
    OpenAIEmbeddingGenerator,
    TextractOCRService,
)
from docpipeline.repositories.chunks import SQLChunkRepository
from docpipeline.repositories.documents import SQLDocumentRepository
from docpipeline.schemas.pipeline import (
    ErrorResponse,
    ExtractRequest,
    ExtractResponse,
    IndexDocumentRequest,
    IndexDocumentResponse,
)
from docpipeline.services.indexing import DocumentIndexingService
from docpipeline.storage.s3 import S3BlobFetcher

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Document Pipeline"])


# ---------------------------------------------------------------------------
# Dependency providers: overridden in tests via app.dependency_overrides
# ---------------------------------------------------------------------------

@lru_cache(maxsize=1)
def get_indexing_service() -> DocumentIndexingService:
    return DocumentIndexingService(
        documents=SQLDocumentRepository(),
        extractor=DocumentTextExtractor(S3BlobFetcher(), TextractOCRService()),
        chunker=DocumentChunker(),
        embeddings=OpenAIEmbeddingGenerator(),
        chunks=SQLChunkRepository(),
        audit=DBAuditLogger(),
    )


@lru_cache(maxsize=1)
def get_extraction_agent() -> ExtractionAgent:
    return ExtractionAgent(ChatOpenAIClient(), DBAuditLogger())


# ---------------------------------------------------------------------------
# POST /documents/{document_id}/index
# ---------------------------------------------------------------------------

@router.post(
    "/documents/{document_id}/index",
    response_model=IndexDocumentResponse,
    status_code=status.HTTP_200_OK,
    summary="Index a document for semantic search",
    description=(
        "Acquires text, chunks and embeds it, and persists the chunk set. "
        "Returns status skipped when the same text was already indexed under the "
        "current chunking version and embedding model, and needs_ocr when no "
        "usable text could be acquired."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Document not found"},
        502: {"model": ErrorResponse, "description": "Embedding provider failed"},
        503: {"model": ErrorResponse, "description": "Chunk store unavailable"},
    },
)
async def index_document(
    document_id: str,
    body:        IndexDocumentRequest | None = None,
    service:     DocumentIndexingService = Depends(get_indexing_service),
) -> IndexDocumentResponse:
    body   = body or IndexDocumentRequest()
    result = await service.index_document(
        document_id,
        force_reindex=body.force_reindex,
        trace_id=body.trace_id,
        user_id=body.user_id,
    )
    return IndexDocumentResponse(**result.to_dict())


# ---------------------------------------------------------------------------
# POST /tramites/{tramite_id}/extract
# ---------------------------------------------------------------------------

@router.post(
    "/tramites/{tramite_id}/extract",
    response_model=ExtractResponse,
    status_code=status.HTTP_200_OK,
    summary="Extract schema-valid structured data from document text",
    responses={
        422: {"model": ErrorResponse, "description": "Empty text or unknown domain type"},
        502: {"model": ErrorResponse, "description": "Model output invalid after all attempts"},
    },
)
async def extract_structured(
    tramite_id: str,
    body:       ExtractRequest,
    agent:      ExtractionAgent = Depends(get_extraction_agent),
) -> ExtractResponse:
    result = await agent.extract(ExtractionInput(
        domain_type=body.domain_type,
        document_id=body.document_id,
        raw_text=body.raw_text,
        file_meta=body.file_meta,
        user_id=body.user_id,
        tramite_id=tramite_id,
        trace_id=body.trace_id,
    ))
    return ExtractResponse(**result.to_dict())
