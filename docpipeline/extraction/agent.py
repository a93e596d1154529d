"""
Extraction Agent  —  Schema-Validated LLM Extraction with Bounded Repair
═══════════════════════════════════════════════════════════════════════

State machine (max_attempts = 3 by default):

  Draft(1)     system prompt + user prompt
     │
     ├─ unparseable JSON ─┐
     ├─ schema invalid ───┤  attempts left?  yes → audit "retry"  → Repair(n+1)
     │                    │                  no  → audit "error"  → AIOutputInvalidError
     └─ valid ──────────────────────────────────→ audit "success" → ExtractionResult

  Repair(n)    system prompt (unchanged) + repair prompt built from the
               original text, the previous raw output and its errors.
               A fresh call, not a conversation continuation.

No backoff between attempts: each retry reformulates the prompt.
The agent never returns a payload that failed schema validation.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import uuid
from typing import Any

from pydantic import ValidationError

from docpipeline.core.config import settings
from docpipeline.core.errors import AIOutputInvalidError, ExtractionInputError
from docpipeline.extraction.registry import PluginRegistry, default_registry
from docpipeline.extraction.types import (
    ExtractionAttempt,
    ExtractionInput,
    ExtractionPlugin,
    ExtractionResult,
    LLMClient,
    LLMCompletion,
    SourceRef,
)
from docpipeline.observability.audit import ACTION_EXTRACTION, AuditEvent, AuditLogger, StageTimer
from docpipeline.observability.tracing import traced

logger = logging.getLogger(__name__)

AUDIT_STAGE = "ai_extract"

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


# ---------------------------------------------------------------------------
# Output parsing
# ---------------------------------------------------------------------------

def parse_model_json(content: str | None) -> tuple[Any, str | None]:
    """Return (value, None) on success or (None, error message)."""
    text = (content or "").strip()
    if not text:
        return None, "empty model output"

    if text.startswith("```"):
        match = _FENCE_RE.search(text)
        if match and match.group(1):
            text = match.group(1)

    try:
        return json.loads(text), None
    except json.JSONDecodeError as exc:
        return None, f"invalid JSON: {exc.msg} (line {exc.lineno} column {exc.colno})"


def format_validation_issues(exc: ValidationError) -> list[str]:
    """`"<dotted.path>: <message>"` per issue, `(root)` for the top level."""
    issues = []
    for error in exc.errors():
        path = ".".join(str(part) for part in error.get("loc", ())) or "(root)"
        issues.append(f"{path}: {error.get('msg', 'invalid value')}")
    return issues


# ---------------------------------------------------------------------------
# Agent
# ---------------------------------------------------------------------------

class ExtractionAgent:
    """
    Drives a language model to a schema-valid structured payload.

    Usage:
        agent  = ExtractionAgent(ChatOpenAIClient(), DBAuditLogger())
        result = await agent.extract(ExtractionInput(
            domain_type="preaviso", document_id=doc_id, raw_text=text,
        ))
    """

    def __init__(
        self,
        llm_client:   LLMClient,
        audit_logger: AuditLogger,
        registry:     PluginRegistry | None = None,
        max_attempts: int | None = None,
        max_tokens:   int | None = None,
    ) -> None:
        self._llm          = llm_client
        self._audit        = audit_logger
        self._registry     = registry or default_registry()
        self._max_attempts = max_attempts or settings.extraction_max_attempts
        self._max_tokens   = max_tokens or settings.llm_max_tokens

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @traced("ai_extract")
    async def extract(self, data: ExtractionInput) -> ExtractionResult:
        plugin   = self._registry.get(data.domain_type)
        trace_id = data.trace_id or str(uuid.uuid4())

        raw_text = (data.raw_text or "").strip()
        if not raw_text:
            raise ExtractionInputError(
                "No text available for extraction", code="empty_text", trace_id=trace_id,
            )

        base_metadata = {
            "user_id":     data.user_id,
            "tramite_id":  data.tramite_id,
            "text_length": len(raw_text),
            "text_hash":   hashlib.sha256(raw_text.encode("utf-8")).hexdigest(),
            "file_meta":   data.file_meta or {},
        }

        system_prompt = plugin.build_system_prompt(data)
        previous: ExtractionAttempt | None = None

        for number in range(1, self._max_attempts + 1):
            user_prompt = (
                plugin.build_user_prompt(data)
                if previous is None
                else plugin.build_repair_prompt(data, previous)
            )

            timer      = StageTimer()
            completion = await self._llm.complete(system_prompt, user_prompt, self._max_tokens)
            elapsed    = timer.elapsed_ms

            value, parse_error = parse_model_json(completion.content)
            if parse_error is None:
                structured, issues = self._validate(plugin, value)
            else:
                structured, issues = None, [parse_error]

            attempt = ExtractionAttempt(
                number=number,
                prompt=user_prompt,
                raw_output=completion.content or "",
                errors=tuple(issues),
            )

            if not attempt.failed:
                await self._log(data, trace_id, attempt, "success", completion, elapsed, base_metadata)
                logger.info(
                    "ExtractionAgent | trace=%s domain=%s status=success attempts=%d model=%s",
                    trace_id, plugin.domain_type, number, completion.model,
                )
                return self._result(structured, trace_id, number)

            exhausted = number >= self._max_attempts
            status    = "error" if exhausted else "retry"
            await self._log(data, trace_id, attempt, status, completion, elapsed, base_metadata)
            logger.warning(
                "ExtractionAgent | trace=%s domain=%s status=%s attempt=%d/%d errors=%s",
                trace_id, plugin.domain_type, status, number, self._max_attempts,
                " | ".join(attempt.errors),
            )

            if exhausted:
                if parse_error is not None:
                    raise AIOutputInvalidError(
                        "Model output could not be parsed as JSON",
                        {"trace_id": trace_id, "attempts": number, "cause": parse_error},
                    )
                raise AIOutputInvalidError(
                    "Model output failed schema validation",
                    {"trace_id": trace_id, "attempts": number, "issues": list(attempt.errors)},
                )

            previous = attempt

        # max_attempts < 1
        raise AIOutputInvalidError(
            "No structured output could be extracted",
            {"trace_id": trace_id, "attempts": 0},
        )

    # ------------------------------------------------------------------

    @staticmethod
    def _validate(plugin: ExtractionPlugin, value: Any) -> tuple[Any, list[str]]:
        try:
            return plugin.output_schema.model_validate(value), []
        except ValidationError as exc:
            return None, format_validation_issues(exc)

    @staticmethod
    def _result(structured: Any, trace_id: str, attempts: int) -> ExtractionResult:
        confidence = getattr(structured, "confidence", None)
        refs       = getattr(structured, "source_refs", None) or []
        return ExtractionResult(
            structured=structured,
            trace_id=trace_id,
            confidence=float(confidence) if isinstance(confidence, (int, float)) else None,
            warnings=list(getattr(structured, "warnings", None) or []),
            source_refs=[SourceRef(field=r.field, evidence=r.evidence) for r in refs],
            attempts=attempts,
        )

    async def _log(
        self,
        data:          ExtractionInput,
        trace_id:      str,
        attempt:       ExtractionAttempt,
        status:        str,
        completion:    LLMCompletion,
        duration_ms:   int,
        base_metadata: dict[str, Any],
    ) -> None:
        metadata = {
            **base_metadata,
            "domain_type": data.domain_type,
            "attempt":     attempt.number,
            "model":       completion.model,
            "usage":       completion.usage,
        }
        if attempt.failed:
            metadata["reason"] = " | ".join(attempt.errors)

        await self._audit.log(AuditEvent(
            trace_id=trace_id,
            stage=AUDIT_STAGE,
            status=status,
            duration_ms=duration_ms,
            metadata=metadata,
            user_id=data.user_id,
            documento_id=data.document_id,
            tramite_id=data.tramite_id,
            action_type=ACTION_EXTRACTION,
        ))
