"""
Preaviso Extraction Plugin
══════════════════════════

Output schema and prompts for the "preaviso" notarial workflow: property
registry data (folio real, partidas, address, cadastral data), the
registered owner, detected buyers and spouses, and liens.

Schema rules:
  - every object is strict: unknown keys are rejected
  - nullable strings are trimmed and must be non-empty when present
  - gravamenes is "LIBRE", a list of lien details, or null
  - values are not coerced; inmueble and confidence may be omitted but not null

Prompts are in Spanish, the language of the source documents.
"""

from __future__ import annotations

import json
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator

from docpipeline.extraction.types import ExtractionAttempt, ExtractionInput, ExtractionPlugin

NonEmptyStr  = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
NullableStr  = NonEmptyStr | None


class _Strict(BaseModel):
    # no coercion: "0.9" or true is not a confidence
    model_config = ConfigDict(extra="forbid", strict=True)


# ---------------------------------------------------------------------------
# Output schema
# ---------------------------------------------------------------------------

class Direccion(_Strict):
    calle:         NullableStr = None
    numero:        NullableStr = None
    colonia:       NullableStr = None
    municipio:     NullableStr = None
    estado:        NullableStr = None
    codigo_postal: NullableStr = None


class DatosCatastrales(_Strict):
    lote:            NullableStr = None
    manzana:         NullableStr = None
    fraccionamiento: NullableStr = None
    condominio:      NullableStr = None
    unidad:          NullableStr = None
    modulo:          NullableStr = None


class Inmueble(_Strict):
    folio_real:        NullableStr = None
    partidas:          list[NonEmptyStr] = Field(default_factory=list)
    seccion:           NullableStr = None
    numero_expediente: NullableStr = None
    direccion:         Direccion | None = None
    superficie:        NullableStr = None
    valor:             NullableStr = None
    datos_catastrales: DatosCatastrales | None = None


class PersonaDetectada(_Strict):
    nombre: NullableStr
    rfc:    NullableStr = None
    curp:   NullableStr = None


class Conyuge(_Strict):
    nombre: NullableStr


class GravamenDetalle(_Strict):
    institucion: NullableStr = None
    monto:       NullableStr = None
    moneda:      NullableStr = None
    tipo:        NullableStr = None


class EvidenceRef(_Strict):
    field:    NonEmptyStr
    evidence: NonEmptyStr


class PreavisoExtraction(_Strict):
    source_document_type: Literal[
        "inscripcion", "escritura", "identificacion", "acta_matrimonio", "otro",
    ]
    inmueble:               Inmueble | None = None
    titular_registral:      PersonaDetectada | None = None
    compradores_detectados: list[PersonaDetectada] = Field(default_factory=list)
    conyuges_detectados:    list[Conyuge] = Field(default_factory=list)
    gravamenes:             Literal["LIBRE"] | list[GravamenDetalle] | None = None
    confidence:             float | None = Field(default=None, ge=0, le=1)
    warnings:               list[str] = Field(default_factory=list)
    source_refs:            list[EvidenceRef] = Field(default_factory=list)

    @field_validator("inmueble", "confidence", mode="before")
    @classmethod
    def _omit_rather_than_null(cls, value):
        if value is None:
            raise ValueError("must be omitted rather than null")
        return value


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = "\n".join([
    "Eres un extractor juridico notarial para tramite PREAVISO.",
    "Tu tarea es convertir texto de documento a JSON ESTRICTO y valido.",
    "No inventes datos. Si no hay evidencia textual, usa null o arreglos vacios.",
    "Responde SOLO JSON valido, sin markdown, sin explicaciones.",
    "Usa exactamente el esquema solicitado por el usuario.",
])

SCHEMA_EXAMPLE = """{
  "source_document_type": "inscripcion|escritura|identificacion|acta_matrimonio|otro",
  "inmueble": {
    "folio_real": "string|null",
    "partidas": ["string"],
    "seccion": "string|null",
    "numero_expediente": "string|null",
    "direccion": {
      "calle": "string|null",
      "numero": "string|null",
      "colonia": "string|null",
      "municipio": "string|null",
      "estado": "string|null",
      "codigo_postal": "string|null"
    },
    "superficie": "string|null",
    "valor": "string|null",
    "datos_catastrales": {
      "lote": "string|null",
      "manzana": "string|null",
      "fraccionamiento": "string|null",
      "condominio": "string|null",
      "unidad": "string|null",
      "modulo": "string|null"
    }
  },
  "titular_registral": { "nombre": "string|null", "rfc": "string|null", "curp": "string|null" },
  "compradores_detectados": [{ "nombre": "string|null", "rfc": "string|null", "curp": "string|null" }],
  "conyuges_detectados": [{ "nombre": "string|null" }],
  "gravamenes": "LIBRE | [{ institucion, monto, moneda, tipo }] | null",
  "confidence": 0.0,
  "warnings": ["string"],
  "source_refs": [{ "field": "campo", "evidence": "texto exacto de respaldo" }]
}"""


class PreavisoExtractionPlugin(ExtractionPlugin[PreavisoExtraction]):
    domain_type   = "preaviso"
    output_schema = PreavisoExtraction

    def build_system_prompt(self, data: ExtractionInput) -> str:
        return SYSTEM_PROMPT

    def build_user_prompt(self, data: ExtractionInput) -> str:
        return "\n\n".join([
            "Extrae los campos minimos para el wizard de preaviso.",
            "Schema de salida requerido:",
            SCHEMA_EXAMPLE,
            "Metadatos del archivo:",
            json.dumps(data.file_meta or {}, ensure_ascii=False, indent=2),
            "Texto del documento (fuente de verdad para extraer):",
            data.raw_text or "",
        ])

    def build_repair_prompt(self, data: ExtractionInput, previous: ExtractionAttempt) -> str:
        return "\n\n".join([
            "Tu salida JSON anterior fue invalida.",
            "Corrigela y devuelve SOLO JSON valido que cumpla el schema.",
            f"Errores de validacion: {' | '.join(previous.errors)}",
            "Salida anterior:",
            previous.raw_output,
            "Texto fuente:",
            data.raw_text or "",
        ])
