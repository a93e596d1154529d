"""
Document Chunker  —  Boundary-Aware Character Windows
═════════════════════════════════════════════════════

Splits normalised text into overlapping, token-budgeted chunks.

Token budgeting
───────────────
  Tokens are estimated as ceil(len / 4): no tokenizer dependency, and the
  same estimate is used for window sizing and for Chunk.token_count.

    target 900 tokens  →  3600 chars
    min    600 tokens  →  2400 chars
    max   1200 tokens  →  4800 chars
    overlap 12 %       →   432 chars

Boundary search
───────────────
  For each window [start + min, start + max]:
    1. sentence / line boundary (\\n . ! ? ; :) closest to start + target
    2. first whitespace at or after the target
    3. last space before the target
    4. cut exactly at the target

  The next window starts `overlap` characters before the previous end,
  never at or before the previous start.

chunking_version
────────────────
  Part of the indexing signature. Any change to the parameters or to the
  algorithm above MUST come with a new version string, otherwise stale
  chunk sets would be treated as current.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any

from docpipeline.core.config import settings

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4

DEFAULT_CHUNKING_VERSION = "v1_text_char_3600_overlap_12"

_BOUNDARY_RE   = re.compile(r"[\n.!?;:]")
_WHITESPACE_RE = re.compile(r"\s")


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ChunkingParams:
    target_tokens:    int   = 900
    min_tokens:       int   = 600
    max_tokens:       int   = 1200
    overlap_ratio:    float = 0.12
    chunking_version: str   = DEFAULT_CHUNKING_VERSION

    @classmethod
    def from_settings(cls) -> "ChunkingParams":
        return cls(
            target_tokens=settings.chunk_target_tokens,
            min_tokens=settings.chunk_min_tokens,
            max_tokens=settings.chunk_max_tokens,
            overlap_ratio=settings.chunk_overlap_ratio,
            chunking_version=settings.chunking_version,
        )

    @property
    def overlap_chars(self) -> int:
        return max(1, math.floor(self.target_tokens * CHARS_PER_TOKEN * self.overlap_ratio))


@dataclass(frozen=True)
class Chunk:
    """
    One chunk of a document's text.

    index        : 0-based, sequential, gapless
    content      : trimmed chunk text
    token_count  : estimated tokens, max(1, ceil(len / 4))
    metadata     : chunking_version, char_start, char_end + caller tags
    """
    index:       int
    content:     str
    token_count: int
    metadata:    dict[str, Any] = field(default_factory=dict, hash=False, compare=False)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def estimate_tokens(text: str) -> int:
    return max(1, math.ceil(len(text) / CHARS_PER_TOKEN))


def normalize_text(text: str | None) -> str:
    text = (text or "").replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t]+\n", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def find_chunk_end(text: str, start: int, min_end: int, target_end: int, max_end: int) -> int:
    safe_min    = max(start + 1, min_end)
    safe_max    = min(len(text), max(safe_min, max_end))
    safe_target = min(safe_max, max(safe_min, target_end))

    if safe_target >= len(text):
        return len(text)

    best, best_distance = -1, math.inf
    for match in _BOUNDARY_RE.finditer(text, safe_min):
        idx = match.start() + 1
        if idx > safe_max:
            break
        distance = abs(idx - safe_target)
        if distance < best_distance:
            best, best_distance = idx, distance

    if best != -1:
        return best

    forward = _WHITESPACE_RE.search(text, safe_target, safe_max)
    if forward:
        return forward.start() + 1

    backward = text.rfind(" ", safe_min, safe_target)
    if backward >= 0:
        return backward + 1

    return safe_target


# ---------------------------------------------------------------------------
# Chunker
# ---------------------------------------------------------------------------

class DocumentChunker:
    """
    Stateless, deterministic chunker.

    Usage:
        chunks = DocumentChunker().chunk(text, ChunkingParams(), {"source": "pdf-native"})
    """

    def __init__(self, params: ChunkingParams | None = None) -> None:
        self._params = params or ChunkingParams.from_settings()

    @property
    def params(self) -> ChunkingParams:
        return self._params

    def chunk(
        self,
        text:     str,
        params:   ChunkingParams | None = None,
        doc_meta: dict[str, Any] | None = None,
    ) -> list[Chunk]:
        params     = params or self._params
        normalized = normalize_text(text)
        if not normalized:
            return []

        length      = len(normalized)
        target_char = params.target_tokens * CHARS_PER_TOKEN
        min_char    = params.min_tokens * CHARS_PER_TOKEN
        max_char    = params.max_tokens * CHARS_PER_TOKEN
        overlap     = params.overlap_chars

        chunks: list[Chunk] = []
        start = 0

        while start < length:
            end = find_chunk_end(
                normalized,
                start,
                min(length, start + min_char),
                min(length, start + target_char),
                min(length, start + max_char),
            )

            content = normalized[start:end].strip()
            if not content:
                start = max(start + 1, end)
                continue

            chunks.append(Chunk(
                index=len(chunks),
                content=content,
                token_count=estimate_tokens(content),
                metadata={
                    "chunking_version": params.chunking_version,
                    "char_start":       start,
                    "char_end":         end,
                    **(doc_meta or {}),
                },
            ))

            if end >= length:
                break
            start = max(start + 1, end - overlap)

        logger.info(
            "Chunker | chars=%d chunks=%d version=%s",
            length, len(chunks), params.chunking_version,
        )
        return chunks
