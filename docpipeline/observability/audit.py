"""
Pipeline Audit Trail
════════════════════

Every stage transition of indexing and extraction is recorded as one
AuditEvent:

    trace_id      correlates every event of one pipeline run
    stage         index_document | extract_text | idempotency | chunking |
                  embedding | persist | ai_extract
    status        start | success | error | skipped | needs_ocr | retry
    duration_ms   wall time of the stage
    metadata      stage-specific detail (chunk counts, attempt, usage, ...)

Backends:
  DBAuditLogger       INSERT into activity_logs, one short transaction per event
  LoggingAuditLogger  one structured log line per event

Audit writes are non-critical: a failing backend logs the error and the
pipeline continues, so an audit outage never masks the pipeline outcome.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docpipeline.db.session import session_scope
from docpipeline.models.documents import ActivityLog

logger = logging.getLogger(__name__)

ACTION_INDEXING   = "document_indexing"
ACTION_EXTRACTION = "document_extraction"


# ---------------------------------------------------------------------------
# Event
# ---------------------------------------------------------------------------

@dataclass
class AuditEvent:
    trace_id:     str
    stage:        str
    status:       str
    duration_ms:  int | None = None
    metadata:     dict[str, Any] = field(default_factory=dict)
    user_id:      str | None = None
    documento_id: str | None = None
    tramite_id:   str | None = None
    action_type:  str = ACTION_INDEXING


class StageTimer:
    """Monotonic stopwatch for stage durations."""

    def __init__(self) -> None:
        self._t0 = time.monotonic()

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self._t0) * 1000)


# ---------------------------------------------------------------------------
# Port
# ---------------------------------------------------------------------------

class AuditLogger(ABC):

    @abstractmethod
    async def log(self, event: AuditEvent) -> None:
        """Record one event. Must not raise."""


class LoggingAuditLogger(AuditLogger):
    """Writes audit events to the `docpipeline.audit` logger only."""

    def __init__(self, name: str = "docpipeline.audit") -> None:
        self._logger = logging.getLogger(name)

    async def log(self, event: AuditEvent) -> None:
        level = logging.ERROR if event.status == "error" else logging.INFO
        self._logger.log(
            level,
            "Audit | trace=%s action=%s stage=%s status=%s doc=%s duration_ms=%s metadata=%s",
            event.trace_id, event.action_type, event.stage, event.status,
            event.documento_id, event.duration_ms, event.metadata,
        )


class DBAuditLogger(AuditLogger):
    """
    Persists audit events to `activity_logs`.

    Each event commits on its own so the trail survives a rolled-back
    pipeline transaction.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        echo_to_log:     bool = True,
    ) -> None:
        self._session_factory = session_factory
        self._echo = LoggingAuditLogger() if echo_to_log else None

    async def log(self, event: AuditEvent) -> None:
        if self._echo is not None:
            await self._echo.log(event)

        try:
            async with session_scope(self._session_factory) as session:
                session.add(ActivityLog(
                    trace_id=event.trace_id,
                    user_id=event.user_id,
                    documento_id=event.documento_id,
                    tramite_id=event.tramite_id,
                    action_type=event.action_type,
                    stage=event.stage,
                    status=event.status,
                    duration_ms=event.duration_ms,
                    event_metadata=event.metadata,
                ))
        except Exception as exc:
            logger.error(
                "AuditLogger | insert failed (non-fatal) | trace=%s stage=%s status=%s: %s",
                event.trace_id, event.stage, event.status, exc,
            )
