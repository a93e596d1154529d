"""
Unit tests — ExtractionAgent (schema-validated extraction with bounded repair)

Coverage targets:
  ✅ Draft succeeds first time → one call, one success audit event
  ✅ Unparseable output three times → AIOutputInvalidError(attempts=3, cause)
  ✅ Schema-invalid then valid → repair prompt carries field-level issues
  ✅ Schema-invalid every time → terminal error carries the issue list
  ✅ Markdown code fences around JSON are tolerated
  ✅ Every attempt audited with trace_id, domain, document, attempt, usage
  ✅ Unknown domain type / empty text rejected before any model call
  ✅ Inscripcion text through the registry: folio, owner and liens extracted
  ✅ Preaviso schema strictness: unknown keys, blank strings, gravamenes forms
  ✅ No type coercion; inmueble / confidence omissible but never null
"""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from docpipeline.core.errors import AIOutputInvalidError, ExtractionInputError
from docpipeline.extraction.agent import AUDIT_STAGE, format_validation_issues, parse_model_json
from docpipeline.extraction.plugins.preaviso import (
    SYSTEM_PROMPT,
    PreavisoExtraction,
    PreavisoExtractionPlugin,
)
from docpipeline.extraction.registry import DomainType, PluginRegistry, default_registry
from docpipeline.extraction.types import ExtractionAttempt, ExtractionInput
from docpipeline.observability.audit import ACTION_EXTRACTION
from tests.conftest import as_json


@pytest.fixture
def extraction_input(usable_text) -> ExtractionInput:
    return ExtractionInput(
        domain_type="preaviso",
        document_id="doc-1",
        raw_text=usable_text,
        file_meta={"filename": "inscripcion.pdf"},
        user_id="user-1",
        tramite_id="tramite-1",
        trace_id="trace-1",
    )


# ─────────────────────────────────────────────────────────────────────────────
# Output parsing helpers
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.extraction
class TestParseModelJson:

    def test_plain_json(self):
        assert parse_model_json('{"a": 1}') == ({"a": 1}, None)

    def test_fenced_json(self):
        assert parse_model_json('```json\n{"a": 1}\n```') == ({"a": 1}, None)
        assert parse_model_json('```\n[1, 2]\n```') == ([1, 2], None)

    def test_empty_output(self):
        assert parse_model_json("   ") == (None, "empty model output")
        assert parse_model_json(None) == (None, "empty model output")

    def test_invalid_json_reports_position(self):
        value, error = parse_model_json("{not json")
        assert value is None
        assert error.startswith("invalid JSON:")
        assert "line 1" in error

    def test_validation_issue_paths(self):
        with pytest.raises(ValidationError) as exc_info:
            PreavisoExtraction.model_validate({
                "source_document_type": "inscripcion",
                "inmueble": {"folio_real": 123, "extra": "x"},
            })
        issues = format_validation_issues(exc_info.value)

        assert any(i.startswith("inmueble.folio_real: ") for i in issues)
        assert "inmueble.extra: Extra inputs are not permitted" in issues

    def test_root_level_issue(self):
        with pytest.raises(ValidationError) as exc_info:
            PreavisoExtraction.model_validate([1, 2])
        assert format_validation_issues(exc_info.value)[0].startswith("(root): ")


# ─────────────────────────────────────────────────────────────────────────────
# Retry / repair state machine
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.extraction
class TestExtractionAgent:

    async def test_first_attempt_success(
        self, make_agent, audit_log, extraction_input, preaviso_payload
    ):
        agent, llm = make_agent([as_json(preaviso_payload)])

        result = await agent.extract(extraction_input)

        assert isinstance(result.structured, PreavisoExtraction)
        assert result.structured.inmueble.folio_real == "123456"
        assert result.structured.gravamenes == "LIBRE"
        assert result.confidence == pytest.approx(0.82)
        assert result.source_refs[0].field == "inmueble.folio_real"
        assert result.trace_id == "trace-1"
        assert result.attempts == 1
        assert len(llm.calls) == 1
        assert llm.calls[0]["system_prompt"] == SYSTEM_PROMPT
        assert llm.calls[0]["max_tokens"] == 3000
        assert audit_log.statuses(AUDIT_STAGE) == ["success"]

    async def test_registry_extract_scenario(self, make_agent):
        raw_text = "FOLIO REAL 1782486. Propietario JUAN PEREZ. Libre de gravamen."
        model_output = {
            "source_document_type": "inscripcion",
            "inmueble": {"folio_real": "1782486", "partidas": []},
            "titular_registral": {"nombre": "JUAN PEREZ"},
            "gravamenes": "LIBRE",
            "confidence": 0.9,
            "source_refs": [{"field": "inmueble.folio_real", "evidence": "FOLIO REAL 1782486"}],
        }
        agent, llm = make_agent([as_json(model_output)])

        result = await agent.extract(ExtractionInput(
            domain_type="preaviso", document_id="doc-7", raw_text=raw_text,
        ))

        assert result.structured.inmueble.folio_real == "1782486"
        assert result.structured.titular_registral.nombre == "JUAN PEREZ"
        assert result.structured.gravamenes == "LIBRE"
        assert result.attempts == 1
        assert raw_text in llm.calls[0]["user_prompt"]

    async def test_coerced_types_trigger_repair(
        self, make_agent, audit_log, extraction_input, preaviso_payload
    ):
        loose = {**preaviso_payload, "confidence": "0.82"}
        agent, llm = make_agent([as_json(loose), as_json(preaviso_payload)])

        result = await agent.extract(extraction_input)

        assert result.attempts == 2
        assert "confidence:" in llm.calls[1]["user_prompt"]
        assert audit_log.statuses(AUDIT_STAGE) == ["retry", "success"]

    async def test_unparseable_output_exhausts_attempts(
        self, make_agent, audit_log, extraction_input
    ):
        agent, llm = make_agent(["this is not json"])

        with pytest.raises(AIOutputInvalidError) as exc_info:
            await agent.extract(extraction_input)

        err = exc_info.value
        assert err.attempts == 3
        assert err.trace_id == "trace-1"
        assert err.details["cause"].startswith("invalid JSON:")
        assert len(llm.calls) == 3
        assert audit_log.statuses(AUDIT_STAGE) == ["retry", "retry", "error"]

    async def test_schema_repair_then_success(
        self, make_agent, audit_log, extraction_input, preaviso_payload
    ):
        invalid = {**preaviso_payload, "notario": "Lic. Gomez"}
        agent, llm = make_agent([as_json(invalid), as_json(preaviso_payload)])

        result = await agent.extract(extraction_input)

        assert result.attempts == 2
        assert audit_log.statuses(AUDIT_STAGE) == ["retry", "success"]

        repair_prompt = llm.calls[1]["user_prompt"]
        assert "notario: Extra inputs are not permitted" in repair_prompt
        assert as_json(invalid) in repair_prompt
        assert extraction_input.raw_text in repair_prompt
        assert llm.calls[1]["system_prompt"] == llm.calls[0]["system_prompt"]

        retry_event = audit_log.events[0]
        assert "notario" in retry_event.metadata["reason"]

    async def test_schema_invalid_every_attempt(
        self, make_agent, extraction_input, preaviso_payload
    ):
        invalid = {k: v for k, v in preaviso_payload.items() if k != "source_document_type"}
        agent, llm = make_agent([as_json(invalid)])

        with pytest.raises(AIOutputInvalidError) as exc_info:
            await agent.extract(extraction_input)

        assert exc_info.value.attempts == 3
        assert "source_document_type: Field required" in exc_info.value.details["issues"]
        assert "cause" not in exc_info.value.details

    async def test_fenced_output_accepted(self, make_agent, extraction_input, preaviso_payload):
        agent, _ = make_agent([f"```json\n{as_json(preaviso_payload)}\n```"])
        result = await agent.extract(extraction_input)
        assert result.attempts == 1

    async def test_custom_attempt_budget(self, make_agent, audit_log, extraction_input):
        agent, llm = make_agent(["{"], max_attempts=1)

        with pytest.raises(AIOutputInvalidError) as exc_info:
            await agent.extract(extraction_input)

        assert exc_info.value.attempts == 1
        assert len(llm.calls) == 1
        assert audit_log.statuses(AUDIT_STAGE) == ["error"]

    async def test_every_attempt_audited(
        self, make_agent, audit_log, extraction_input, preaviso_payload
    ):
        agent, _ = make_agent(["nope", as_json(preaviso_payload)])
        await agent.extract(extraction_input)

        for number, event in enumerate(audit_log.events, start=1):
            assert event.trace_id == "trace-1"
            assert event.action_type == ACTION_EXTRACTION
            assert event.documento_id == "doc-1"
            assert event.tramite_id == "tramite-1"
            assert event.user_id == "user-1"
            assert event.metadata["domain_type"] == "preaviso"
            assert event.metadata["attempt"] == number
            assert event.metadata["model"] == "test-llm"
            assert event.metadata["usage"]["total_tokens"] == 150
            assert event.metadata["text_length"] == len(extraction_input.raw_text)

    async def test_trace_id_generated_when_absent(
        self, make_agent, extraction_input, preaviso_payload
    ):
        extraction_input.trace_id = None
        agent, _ = make_agent([as_json(preaviso_payload)])

        result = await agent.extract(extraction_input)

        assert result.trace_id
        assert result.trace_id != "trace-1"

    async def test_unknown_domain_type(self, make_agent, extraction_input):
        extraction_input.domain_type = "hipoteca"
        agent, llm = make_agent(["{}"])

        with pytest.raises(ExtractionInputError) as exc_info:
            await agent.extract(extraction_input)

        assert exc_info.value.code == "unknown_domain_type"
        assert llm.calls == []

    async def test_empty_text(self, make_agent, audit_log, extraction_input):
        extraction_input.raw_text = "  \n "
        agent, llm = make_agent(["{}"])

        with pytest.raises(ExtractionInputError) as exc_info:
            await agent.extract(extraction_input)

        assert exc_info.value.code == "empty_text"
        assert exc_info.value.trace_id == "trace-1"
        assert llm.calls == []
        assert audit_log.events == []

    async def test_result_to_dict(self, make_agent, extraction_input, preaviso_payload):
        agent, _ = make_agent([as_json(preaviso_payload)])
        result = await agent.extract(extraction_input)

        body = result.to_dict()
        assert body["structured"]["inmueble"]["partidas"] == ["789"]
        assert body["source_refs"] == [
            {"field": "inmueble.folio_real", "evidence": "Folio real 123456"},
        ]
        assert body["trace_id"] == "trace-1"


# ─────────────────────────────────────────────────────────────────────────────
# Preaviso plugin + registry
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.extraction
class TestPreavisoPlugin:

    def test_user_prompt_contains_text_and_file_meta(self, extraction_input):
        prompt = PreavisoExtractionPlugin().build_user_prompt(extraction_input)

        assert extraction_input.raw_text in prompt
        assert '"filename": "inscripcion.pdf"' in prompt

    def test_repair_prompt_lists_every_error(self, extraction_input):
        previous = ExtractionAttempt(
            number=1, prompt="p", raw_output='{"x": 1}',
            errors=("x: Extra inputs are not permitted", "source_document_type: Field required"),
        )
        prompt = PreavisoExtractionPlugin().build_repair_prompt(extraction_input, previous)

        assert (
            "Errores de validacion: x: Extra inputs are not permitted | "
            "source_document_type: Field required"
        ) in prompt
        assert '{"x": 1}' in prompt

    def test_blank_strings_rejected(self, preaviso_payload):
        preaviso_payload["titular_registral"]["nombre"] = "   "
        with pytest.raises(ValidationError):
            PreavisoExtraction.model_validate(preaviso_payload)

    def test_gravamenes_as_list(self, preaviso_payload):
        preaviso_payload["gravamenes"] = [
            {"institucion": "Banco X", "monto": "1,000,000", "moneda": "MXN", "tipo": "hipoteca"},
        ]
        parsed = PreavisoExtraction.model_validate(preaviso_payload)
        assert parsed.gravamenes[0].institucion == "Banco X"

    def test_gravamenes_free_text_rejected(self, preaviso_payload):
        preaviso_payload["gravamenes"] = "sin gravamen"
        with pytest.raises(ValidationError):
            PreavisoExtraction.model_validate(preaviso_payload)

    def test_confidence_bounds(self, preaviso_payload):
        preaviso_payload["confidence"] = 1.5
        with pytest.raises(ValidationError):
            PreavisoExtraction.model_validate(json.loads(json.dumps(preaviso_payload)))

    @pytest.mark.parametrize("overrides", [
        {"confidence": "0.9"},
        {"confidence": True},
        {"confidence": None},
        {"inmueble": None},
    ])
    def test_no_coercion_or_explicit_null(self, overrides):
        with pytest.raises(ValidationError):
            PreavisoExtraction.model_validate({"source_document_type": "otro", **overrides})

    def test_optional_sections_may_be_omitted(self):
        parsed = PreavisoExtraction.model_validate({"source_document_type": "otro"})
        assert parsed.inmueble is None
        assert parsed.confidence is None


@pytest.mark.unit
@pytest.mark.extraction
class TestPluginRegistry:

    def test_default_registry(self):
        registry = default_registry()
        assert registry.domain_types() == ["preaviso"]
        assert isinstance(registry.get(DomainType.PREAVISO), PreavisoExtractionPlugin)

    def test_empty_registry_rejects_known_domain(self):
        with pytest.raises(ExtractionInputError) as exc_info:
            PluginRegistry().get("preaviso")
        assert exc_info.value.details == {"domain_type": "preaviso"}
