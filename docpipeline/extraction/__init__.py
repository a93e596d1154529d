"""
Structured Extraction Package

Turns already-acquired document text into schema-valid domain data:

  ExtractionAgent  — bounded retry / repair loop over an LLMClient
  PluginRegistry   — DomainType → ExtractionPlugin (prompts + pydantic schema)

Public API::

    from docpipeline.extraction import ExtractionAgent, ExtractionInput

    agent  = ExtractionAgent(llm_client, audit_logger)
    result = await agent.extract(ExtractionInput(
        domain_type="preaviso", document_id=doc_id, raw_text=text,
    ))
    result.structured.inmueble.folio_real
"""

from docpipeline.extraction.agent import ExtractionAgent
from docpipeline.extraction.registry import DomainType, PluginRegistry, default_registry
from docpipeline.extraction.types import (
    ExtractionAttempt,
    ExtractionInput,
    ExtractionPlugin,
    ExtractionResult,
    LLMClient,
    LLMCompletion,
    SourceRef,
)

__all__ = [
    "ExtractionAgent",
    "DomainType",
    "PluginRegistry",
    "default_registry",
    "ExtractionAttempt",
    "ExtractionInput",
    "ExtractionPlugin",
    "ExtractionResult",
    "LLMClient",
    "LLMCompletion",
    "SourceRef",
]
