"""
Blob Fetch — raw document bytes from object storage

The pipeline only ever reads: a document's stored bytes are needed for
format-native extraction (PDF / DOCX) and for the OCR fallback.

    fetcher = S3BlobFetcher()
    data    = await fetcher.fetch(document)

Missing objects raise FileNotFoundError; every other storage failure
propagates unchanged. The text extractor turns both into the
`download_failed` reason code.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod

import aioboto3
from botocore.exceptions import ClientError

from docpipeline.core.config import settings
from docpipeline.models.records import DocumentRecord
from docpipeline.observability.tracing import traced

logger = logging.getLogger(__name__)


class BlobFetcher(ABC):
    """Port: `(document) -> bytes`."""

    @abstractmethod
    async def fetch(self, document: DocumentRecord) -> bytes | None:
        """Return the stored bytes, or None when the document has no stored object."""


class S3BlobFetcher(BlobFetcher):
    """
    Reads documents from a single S3 bucket using their `storage_key`.

    One aioboto3 session per instance; a scoped client is opened per call
    so the fetcher is safe to share between sequential pipeline runs.
    """

    def __init__(self, bucket: str | None = None, region: str | None = None) -> None:
        self._bucket  = bucket or settings.s3_bucket
        self._region  = region or settings.aws_region
        self._session = aioboto3.Session(**settings.aws_credentials)

    def _client(self):
        """Return a scoped async S3 client context manager."""
        return self._session.client("s3", region_name=self._region)

    @traced("blob_fetch")
    async def fetch(self, document: DocumentRecord) -> bytes | None:
        if not document.storage_key:
            return None

        t0 = time.monotonic()
        async with self._client() as s3:
            try:
                resp = await s3.get_object(Bucket=self._bucket, Key=document.storage_key)
                data = await resp["Body"].read()
            except ClientError as exc:
                code = exc.response["Error"]["Code"]
                if code in ("NoSuchKey", "404"):
                    raise FileNotFoundError(
                        f"Object not found: s3://{self._bucket}/{document.storage_key}"
                    ) from exc
                raise

        logger.info(
            "BlobFetch | doc=%s key=%s bytes=%d elapsed_ms=%.0f",
            document.id, document.storage_key, len(data),
            (time.monotonic() - t0) * 1000,
        )
        return data
