"""
Extraction contracts — inputs, results, plugin capability and LLM port.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

StructuredT = TypeVar("StructuredT", bound=BaseModel)


# ---------------------------------------------------------------------------
# Input / output
# ---------------------------------------------------------------------------

@dataclass
class ExtractionInput:
    """
    domain_type  : registry key, e.g. "preaviso"
    document_id  : document the text came from (audit only)
    raw_text     : text already acquired by the caller
    file_meta    : caller-supplied file metadata, shown to the model as context
    user_id / tramite_id / trace_id : audit context
    """
    domain_type: str
    document_id: str
    raw_text:    str
    file_meta:   dict[str, Any] = field(default_factory=dict)
    user_id:     str | None = None
    tramite_id:  str | None = None
    trace_id:    str | None = None


@dataclass(frozen=True)
class SourceRef:
    field:    str
    evidence: str


@dataclass
class ExtractionResult(Generic[StructuredT]):
    """A schema-valid payload. Never constructed from unvalidated output."""
    structured:  StructuredT
    trace_id:    str
    confidence:  float | None = None
    warnings:    list[str] = field(default_factory=list)
    source_refs: list[SourceRef] = field(default_factory=list)
    attempts:    int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "structured":  self.structured.model_dump(mode="json"),
            "confidence":  self.confidence,
            "warnings":    list(self.warnings),
            "source_refs": [{"field": r.field, "evidence": r.evidence} for r in self.source_refs],
            "trace_id":    self.trace_id,
        }


@dataclass(frozen=True)
class ExtractionAttempt:
    """
    One round trip to the model. Carried into the next iteration so the
    repair prompt can show the model its own failed output.

    number      : 1-based attempt number
    prompt      : user prompt sent on this attempt
    raw_output  : model output, verbatim
    errors      : parse error or field-level validation issues; empty on success
    """
    number:     int
    prompt:     str
    raw_output: str
    errors:     tuple[str, ...] = ()

    @property
    def failed(self) -> bool:
        return bool(self.errors)


# ---------------------------------------------------------------------------
# Plugin capability
# ---------------------------------------------------------------------------

class ExtractionPlugin(ABC, Generic[StructuredT]):
    """Prompt builders + strict output schema for one domain type."""

    domain_type: str
    output_schema: type[StructuredT]

    @abstractmethod
    def build_system_prompt(self, data: ExtractionInput) -> str: ...

    @abstractmethod
    def build_user_prompt(self, data: ExtractionInput) -> str: ...

    @abstractmethod
    def build_repair_prompt(self, data: ExtractionInput, previous: ExtractionAttempt) -> str: ...


# ---------------------------------------------------------------------------
# Language-model port
# ---------------------------------------------------------------------------

@dataclass
class LLMCompletion:
    content: str
    model:   str | None = None
    usage:   dict[str, int] | None = None


class LLMClient(ABC):
    """`(system_prompt, user_prompt, max_tokens) -> {content, usage, model}`."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt:   str,
        max_tokens:    int | None = None,
    ) -> LLMCompletion: ...
