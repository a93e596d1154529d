"""
Document Processing Package
════════════════════════════

The leaf stages of the indexing pipeline:

  Text Acquisition → Chunking → Embedding

Modules
───────
  ocr.py        OCR port + AWS Textract implementation (image MIME types only)
  extractor.py  Multi-strategy text acquisition with a quality gate
  chunking.py   Boundary-aware, token-budgeted chunker
  embeddings.py Embedding-generator port + OpenAI implementation

Every component is dependency-injected and holds no per-document state,
so one instance can serve any number of sequential pipeline runs.
"""

from docpipeline.processing.chunking import Chunk, ChunkingParams, DocumentChunker
from docpipeline.processing.embeddings import EmbeddingGenerator, OpenAIEmbeddingGenerator
from docpipeline.processing.extractor import (
    DocumentTextExtractor,
    TextExtractionResult,
    TextQuality,
    TextSource,
)
from docpipeline.processing.ocr import OCRService, TextractOCRService

__all__ = [
    "Chunk",
    "ChunkingParams",
    "DocumentChunker",
    "EmbeddingGenerator",
    "OpenAIEmbeddingGenerator",
    "DocumentTextExtractor",
    "TextExtractionResult",
    "TextQuality",
    "TextSource",
    "OCRService",
    "TextractOCRService",
]
