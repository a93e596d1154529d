"""
OCR Service  —  Image Bytes → Ordered Text Lines
════════════════════════════════════════════════

The last strategy of text acquisition. Only image MIME types reach OCR:
PDFs and DOCX files that carry no usable embedded text are reported as
`needs_ocr` instead, so the caller can queue them for a manual pass.

Backend: AWS Textract DetectDocumentText (synchronous API).
  - boto3 is blocking, so the call runs in the default thread executor
  - bounded by settings.ocr_timeout_seconds
  - only LINE blocks are kept, in the order Textract returns them

    ocr   = TextractOCRService()
    lines = await ocr.recognize(image_bytes)
    text  = "\n".join(lines)

The port is intentionally tiny so tests can swap in a stub returning a
fixed list of lines.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod

from docpipeline.core.config import settings
from docpipeline.observability.tracing import traced

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Port
# ---------------------------------------------------------------------------

class OCRService(ABC):
    """`(image bytes) -> ordered list of text lines`."""

    @abstractmethod
    async def recognize(self, image_bytes: bytes) -> list[str]:
        """
        Return recognised lines in reading order.

        Raise on transport failure; the text extractor logs the error and
        treats the document as having no OCR text.
        """


# ---------------------------------------------------------------------------
# AWS Textract
# ---------------------------------------------------------------------------

class TextractOCRService(OCRService):
    """
    AWS Textract — managed OCR for single images (JPEG / PNG / TIFF).

    IAM permission required on the task role:
      textract:DetectDocumentText
    """

    def __init__(
        self,
        region:          str | None = None,
        timeout_seconds: int | None = None,
    ) -> None:
        self._region  = region or settings.aws_region
        self._timeout = timeout_seconds or settings.ocr_timeout_seconds

    @traced("ocr_recognize")
    async def recognize(self, image_bytes: bytes) -> list[str]:
        loop = asyncio.get_running_loop()
        t0   = time.monotonic()

        try:
            lines = await asyncio.wait_for(
                loop.run_in_executor(None, self._recognize_sync, image_bytes),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.error("Textract OCR timed out after %ds", self._timeout)
            raise

        logger.info(
            "Textract | lines=%d bytes=%d elapsed_ms=%.0f",
            len(lines), len(image_bytes), (time.monotonic() - t0) * 1000,
        )
        return lines

    def _recognize_sync(self, image_bytes: bytes) -> list[str]:
        """Blocking DetectDocumentText call — runs in thread executor."""
        import boto3

        client   = boto3.client("textract", region_name=self._region, **settings.aws_credentials)
        response = client.detect_document_text(Document={"Bytes": image_bytes})
        return self.parse_lines(response.get("Blocks", []))

    @staticmethod
    def parse_lines(blocks: list[dict]) -> list[str]:
        """Keep LINE blocks with non-empty text, preserving order."""
        return [
            block["Text"]
            for block in blocks
            if block.get("BlockType") == "LINE" and block.get("Text")
        ]
