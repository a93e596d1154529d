"""
Text Acquisition
════════════════

Turns a stored document into usable text, or reports that it needs OCR.

Strategy order (each tried only if the previous yields nothing usable):

  1. Cached metadata   — a text payload captured earlier (manual OCR pass,
                         import) under rawText / ocrText / text / textoCompleto
  2. Format-native     — PDF: PyMuPDF text layer, one blank line between pages
                         DOCX: word/document.xml with markup stripped
  3. OCR fallback      — image MIME types only, via the OCRService port

Quality gate (is_usable_text):
  trimmed length ≥ min_usable_text_chars (80)
  AND alphanumeric ratio ≥ min_alnum_ratio (0.55), accented letters included

Nothing here raises for an unreadable document. A document without usable
text comes back with needs_ocr=True and a reason code:

  missing_reference     no storage key and no cached text
  download_failed       the blob fetch raised
  empty_file            zero bytes
  pdf_text_not_usable   PDF text layer failed the quality gate
  docx_text_not_usable  DOCX text failed the quality gate
  no_usable_text        OCR unavailable, failed, or below the gate
"""

from __future__ import annotations

import asyncio
import io
import json
import logging
import re
import zipfile
from dataclasses import dataclass
from enum import Enum
from typing import Any

from docpipeline.core.config import settings
from docpipeline.models.records import DocumentRecord
from docpipeline.processing.ocr import OCRService
from docpipeline.storage.s3 import BlobFetcher

logger = logging.getLogger(__name__)

PDF_MIME  = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

_ALNUM_RE = re.compile(r"[A-Za-z0-9\u00C0-\u017F]")

_METADATA_TEXT_KEYS = ("rawText", "ocrText", "text", "textoCompleto")

_XML_ENTITIES = (
    ("&amp;",  "&"),
    ("&lt;",   "<"),
    ("&gt;",   ">"),
    ("&quot;", '"'),
    ("&#39;",  "'"),
)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

class TextSource(str, Enum):
    CACHED_METADATA = "cached-metadata"
    PDF_NATIVE      = "pdf-native"
    DOCX_NATIVE     = "docx-native"
    OCR_FALLBACK    = "ocr-fallback"
    NONE            = "none"


@dataclass(frozen=True)
class TextQuality:
    length:      int
    alnum_ratio: float


@dataclass
class TextExtractionResult:
    """
    Outcome of one acquisition call. Never persisted.

    text       : usable text, or "" when needs_ocr
    source     : which strategy produced the text
    needs_ocr  : True when no strategy yielded usable text
    reason     : reason code when needs_ocr
    quality    : length / alnum ratio of the last candidate inspected
    mime_type  : normalised MIME type, for diagnostics
    """
    text:      str
    source:    TextSource
    needs_ocr: bool
    reason:    str | None = None
    quality:   TextQuality = TextQuality(0, 0.0)
    mime_type: str = ""

    @property
    def is_usable(self) -> bool:
        return not self.needs_ocr and bool(self.text)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def metadata_text(metadata: dict[str, Any] | None) -> str:
    """Return the cached text payload of a document's metadata, or ""."""
    if not isinstance(metadata, dict):
        return ""

    extracted = metadata.get("extracted_data")
    candidates = [metadata.get(key) for key in _METADATA_TEXT_KEYS]
    if isinstance(extracted, dict):
        candidates.append(extracted.get("textoCompleto"))

    for candidate in candidates:
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()

    if isinstance(extracted, dict):
        return json.dumps(extracted, ensure_ascii=False)
    return ""


def docx_xml_to_text(xml: str) -> str:
    """Strip WordprocessingML markup down to plain text."""
    text = xml.replace("<w:tab/>", "\t").replace("<w:br/>", "\n")
    text = re.sub(r"<[^>]+>", "", text)
    for entity, char in _XML_ENTITIES:
        text = text.replace(entity, char)
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = re.sub(r"[ \t]+\n", "\n", text)
    text = re.sub(r"\s{2,}", " ", text)
    return text.strip()


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------

class DocumentTextExtractor:
    """
    Multi-strategy text acquisition with a quality gate.

    Usage:
        extractor = DocumentTextExtractor(S3BlobFetcher(), TextractOCRService())
        result    = await extractor.extract(document)
        if result.needs_ocr:
            ...   # queue for manual OCR, result.reason says why
    """

    def __init__(
        self,
        blob_fetcher:    BlobFetcher,
        ocr_service:     OCRService | None = None,
        min_chars:       int | None = None,
        min_alnum_ratio: float | None = None,
    ) -> None:
        self._blob_fetcher = blob_fetcher
        self._ocr          = ocr_service
        self._min_chars    = settings.min_usable_text_chars if min_chars is None else min_chars
        self._min_ratio    = settings.min_alnum_ratio if min_alnum_ratio is None else min_alnum_ratio

    # ── Quality gate ─────────────────────────────────────────────────────

    @staticmethod
    def text_quality(text: str | None) -> TextQuality:
        normalized = (text or "").strip()
        alnum = len(_ALNUM_RE.findall(normalized))
        return TextQuality(
            length=len(normalized),
            alnum_ratio=alnum / max(1, len(normalized)),
        )

    @staticmethod
    def is_usable_text(
        text:      str | None,
        min_chars: int   = 80,
        min_ratio: float = 0.55,
    ) -> bool:
        quality = DocumentTextExtractor.text_quality(text)
        if quality.length < min_chars:
            return False
        return quality.alnum_ratio >= min_ratio

    def _usable(self, text: str | None) -> bool:
        return self.is_usable_text(text, self._min_chars, self._min_ratio)

    # ── Public API ───────────────────────────────────────────────────────

    async def extract(self, document: DocumentRecord) -> TextExtractionResult:
        """Acquire text for a stored document."""
        mime = (document.mime_type or "").lower()

        cached = metadata_text(document.metadata)
        if self._usable(cached):
            return self._done(document.id, cached, TextSource.CACHED_METADATA, mime)

        if not document.storage_key:
            return self._needs_ocr(document.id, "missing_reference", mime)

        try:
            data = await self._blob_fetcher.fetch(document)
        except Exception as exc:
            logger.warning(
                "TextAcquisition | doc=%s download_failed error=%s", document.id, exc,
            )
            return self._needs_ocr(document.id, "download_failed", mime)

        return await self._from_bytes(document.id, document.filename, mime, data)

    async def extract_from_upload(
        self,
        filename:  str,
        mime_type: str,
        data:      bytes,
    ) -> TextExtractionResult:
        """Acquire text for a file that has not been stored yet."""
        return await self._from_bytes(filename, filename, (mime_type or "").lower(), data)

    # ── Strategy cascade ─────────────────────────────────────────────────

    async def _from_bytes(
        self,
        ref:      str,
        filename: str,
        mime:     str,
        data:     bytes | None,
    ) -> TextExtractionResult:
        if not data:
            return self._needs_ocr(ref, "empty_file", mime)

        name = (filename or "").lower()

        if mime == PDF_MIME or name.endswith(".pdf"):
            text = await asyncio.get_running_loop().run_in_executor(
                None, self._pdf_text_sync, data,
            )
            return self._native(ref, text, TextSource.PDF_NATIVE, "pdf_text_not_usable", mime)

        if mime == DOCX_MIME or name.endswith(".docx"):
            text = self._docx_text(data)
            return self._native(ref, text, TextSource.DOCX_NATIVE, "docx_text_not_usable", mime)

        text = await self._ocr_text(ref, mime, data)
        if text is not None and self._usable(text):
            return self._done(ref, text, TextSource.OCR_FALLBACK, mime)
        return self._needs_ocr(ref, "no_usable_text", mime)

    def _pdf_text_sync(self, data: bytes) -> str:
        """Blocking PyMuPDF read — runs in thread executor."""
        import fitz  # PyMuPDF

        try:
            pages: list[str] = []
            with fitz.open(stream=data, filetype="pdf") as doc:
                for page in doc:
                    text = re.sub(r"\s+", " ", page.get_text("text") or "").strip()
                    if text:
                        pages.append(text)
            return "\n\n".join(pages).strip()
        except Exception as exc:
            logger.warning("TextAcquisition | pdf parse failed: %s", exc)
            return ""

    def _docx_text(self, data: bytes) -> str:
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                if "word/document.xml" not in archive.namelist():
                    return ""
                xml = archive.read("word/document.xml").decode("utf-8", errors="replace")
        except (zipfile.BadZipFile, OSError) as exc:
            logger.warning("TextAcquisition | docx unzip failed: %s", exc)
            return ""
        return docx_xml_to_text(xml)

    async def _ocr_text(self, ref: str, mime: str, data: bytes) -> str | None:
        if self._ocr is None or not mime.startswith("image/"):
            return None
        try:
            lines = await self._ocr.recognize(data)
        except Exception as exc:
            logger.error("TextAcquisition | ref=%s ocr_failed error=%s", ref, exc)
            return None
        return "\n".join(lines) if lines else None

    # ── Result builders ──────────────────────────────────────────────────

    def _native(
        self,
        ref:    str,
        text:   str,
        source: TextSource,
        reason: str,
        mime:   str,
    ) -> TextExtractionResult:
        if self._usable(text):
            return self._done(ref, text, source, mime)
        quality = self.text_quality(text)
        logger.info(
            "TextAcquisition | ref=%s source=%s usable=False length=%d alnum_ratio=%.3f",
            ref, source.value, quality.length, quality.alnum_ratio,
        )
        return TextExtractionResult(
            text="", source=TextSource.NONE, needs_ocr=True,
            reason=reason, quality=quality, mime_type=mime,
        )

    def _done(self, ref: str, text: str, source: TextSource, mime: str) -> TextExtractionResult:
        quality = self.text_quality(text)
        logger.info(
            "TextAcquisition | ref=%s source=%s length=%d alnum_ratio=%.3f",
            ref, source.value, quality.length, quality.alnum_ratio,
        )
        return TextExtractionResult(
            text=text, source=source, needs_ocr=False,
            quality=quality, mime_type=mime,
        )

    @staticmethod
    def _needs_ocr(ref: str, reason: str, mime: str) -> TextExtractionResult:
        logger.info("TextAcquisition | ref=%s needs_ocr reason=%s", ref, reason)
        return TextExtractionResult(
            text="", source=TextSource.NONE, needs_ocr=True,
            reason=reason, mime_type=mime,
        )
