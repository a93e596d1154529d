"""
Embedding Generator  —  Chunk Text → Vector, with Transport Retry
══════════════════════════════════════════════════════════════════

Port contract: `(text) -> vector | None`. None means the embedding could
not be produced; the indexing service turns it into a fatal
EmbeddingFailedError for the failing chunk, so a half-embedded document
is never persisted.

OpenAI embedding model selection:
  text-embedding-3-small  → 1536 dims  (default)
  text-embedding-3-large  → 3072 dims

Retry policy (transport level only):
  On RateLimitError / APIConnectionError / 5xx → wait RETRY_BASE_DELAY × 2^attempt
  On AuthenticationError / BadRequestError     → give up immediately
  After settings.embedding_max_retries         → give up

Chunks are embedded one request at a time, in chunk order, so the first
failure identifies the exact failing chunk index.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod

import openai
from openai import AsyncOpenAI

from docpipeline.core.config import settings
from docpipeline.observability.tracing import traced

logger = logging.getLogger(__name__)

RETRY_BASE_DELAY = 1.0    # seconds, doubled on each retry
RETRY_MAX_DELAY  = 30.0   # cap

_NON_RETRYABLE = (
    openai.AuthenticationError,
    openai.PermissionDeniedError,
    openai.BadRequestError,
    openai.NotFoundError,
)


class EmbeddingGenerator(ABC):
    """Port: `(text) -> vector | None`."""

    @property
    @abstractmethod
    def model(self) -> str:
        """Model identifier; part of the indexing signature."""

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Vector length produced by `model`."""

    @abstractmethod
    async def generate(self, text: str) -> list[float] | None:
        """Return the embedding vector, or None on failure."""


class OpenAIEmbeddingGenerator(EmbeddingGenerator):
    """
    OpenAI embeddings over `openai.AsyncOpenAI`.

    Usage:
        generator = OpenAIEmbeddingGenerator()
        vector    = await generator.generate(chunk.content)
    """

    def __init__(
        self,
        model:       str | None = None,
        dimensions:  int | None = None,
        api_key:     str | None = None,
        max_retries: int | None = None,
        client:      AsyncOpenAI | None = None,
    ) -> None:
        self._model       = model or settings.embedding_model
        self._dimensions  = dimensions or settings.embedding_dimensions
        self._max_retries = settings.embedding_max_retries if max_retries is None else max_retries
        # SDK-level retries disabled: this class owns the retry loop
        self._client = client or AsyncOpenAI(
            api_key=api_key or settings.openai_api_key,
            max_retries=0,
        )

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @traced("embedding_generate")
    async def generate(self, text: str) -> list[float] | None:
        if not text or not text.strip():
            return None

        last_error: Exception | None = None

        for attempt in range(self._max_retries + 1):
            if attempt > 0:
                delay = min(RETRY_BASE_DELAY * (2 ** (attempt - 1)), RETRY_MAX_DELAY)
                logger.warning(
                    "Embedding retry | attempt=%d delay=%.1fs error=%s",
                    attempt, delay, last_error,
                )
                await asyncio.sleep(delay)

            try:
                return await self._call_openai(text)
            except _NON_RETRYABLE as exc:
                logger.error("Non-retryable embedding error: %s %s", type(exc).__name__, exc)
                return None
            except openai.OpenAIError as exc:
                last_error = exc

        logger.error(
            "Embedding failed | model=%s retries=%d error=%s",
            self._model, self._max_retries, last_error,
        )
        return None

    async def _call_openai(self, text: str) -> list[float] | None:
        t0 = time.monotonic()

        kwargs: dict = {"model": self._model, "input": [text]}
        if self._model.startswith("text-embedding-3"):
            kwargs["dimensions"] = self._dimensions

        response = await self._client.embeddings.create(**kwargs)
        vector   = response.data[0].embedding if response.data else None

        logger.debug(
            "OpenAI embeddings | model=%s chars=%d tokens=%s api_ms=%.0f",
            self._model, len(text),
            response.usage.total_tokens if response.usage else "?",
            (time.monotonic() - t0) * 1000,
        )

        if not vector or len(vector) != self._dimensions:
            logger.error(
                "Embedding dimension mismatch | model=%s expected=%d got=%d",
                self._model, self._dimensions, len(vector or []),
            )
            return None
        return list(vector)
