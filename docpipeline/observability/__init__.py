"""
Observability Package — Pipeline Audit Trail

Provides:
  AuditEvent          — one stage transition of an indexing / extraction run
  AuditLogger         — port consumed by the pipeline services
  DBAuditLogger       — activity_logs-backed implementation
  LoggingAuditLogger  — log-only implementation
  StageTimer          — stage duration stopwatch
  TracingConfig       — LangSmith / OpenTelemetry initialisation
  traced              — span decorator for async functions

Usage::

    audit = DBAuditLogger()
    await audit.log(AuditEvent(trace_id=trace_id, stage="chunking",
                               status="success", duration_ms=12))
"""

from docpipeline.observability.audit import (
    ACTION_EXTRACTION,
    ACTION_INDEXING,
    AuditEvent,
    AuditLogger,
    DBAuditLogger,
    LoggingAuditLogger,
    StageTimer,
)
from docpipeline.observability.tracing import TracingConfig, traced

__all__ = [
    "ACTION_EXTRACTION",
    "ACTION_INDEXING",
    "AuditEvent",
    "AuditLogger",
    "DBAuditLogger",
    "LoggingAuditLogger",
    "StageTimer",
    "TracingConfig",
    "traced",
]
