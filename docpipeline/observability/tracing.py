"""
Pipeline Tracing — LangSmith + OpenTelemetry

Spans cover the network-bound pipeline steps:

  index_document → blob fetch → OCR → embeddings → chunk upsert
  extract        → LLM completion (one span per attempt)

Backends:

  LangSmith:
    - LANGSMITH_API_KEY set → LANGCHAIN_TRACING_V2 / LANGCHAIN_API_KEY /
      LANGCHAIN_PROJECT exported for langchain_core, which then traces every
      ChatOpenAI call made by the extraction agent

  OpenTelemetry:
    - OTEL_ENABLED=true + OTEL_EXPORTER_OTLP_ENDPOINT → OTLP/HTTP span export
    - without a configured provider the tracer is a no-op

Decorator `@traced(name)`:
  Opens an OTEL span around an async function and logs its duration;
  exceptions are recorded on the span and re-raised.
"""

from __future__ import annotations

import functools
import logging
import os
import time
from typing import Any, Callable, Coroutine, TypeVar

from opentelemetry import trace

from docpipeline.core.config import settings

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Coroutine[Any, Any, Any]])

_tracer = trace.get_tracer("docpipeline")


# ---------------------------------------------------------------------------
# TracingConfig: initialise at app startup
# ---------------------------------------------------------------------------

class TracingConfig:
    """
    Initialise the enabled tracing backends. Idempotent.

        from docpipeline.observability.tracing import TracingConfig
        TracingConfig.init()
    """

    _initialised: bool = False

    @classmethod
    def init(cls) -> None:
        if cls._initialised:
            return
        cls._initialised = True

        cls._init_langsmith()
        cls._init_otel()

    @staticmethod
    def _init_langsmith() -> None:
        if settings.langsmith_api_key and not os.environ.get("LANGCHAIN_API_KEY"):
            os.environ["LANGCHAIN_TRACING_V2"] = "true"
            os.environ["LANGCHAIN_API_KEY"]    = settings.langsmith_api_key
            os.environ["LANGCHAIN_PROJECT"]    = settings.langsmith_project
            logger.info("LangSmith tracing enabled | project=%s", settings.langsmith_project)
        elif os.environ.get("LANGCHAIN_TRACING_V2") == "true":
            logger.info(
                "LangSmith tracing active (from env) | project=%s",
                os.environ.get("LANGCHAIN_PROJECT", "default"),
            )
        else:
            logger.debug("LangSmith tracing disabled")

    @staticmethod
    def _init_otel() -> None:
        otel_enabled  = os.environ.get("OTEL_ENABLED", "false").lower() == "true"
        otel_endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT", "")

        if not otel_enabled or not otel_endpoint:
            logger.debug("OTEL tracing disabled")
            return

        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor

        provider = TracerProvider(resource=Resource.create({"service.name": "docpipeline"}))
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otel_endpoint)))
        trace.set_tracer_provider(provider)

        logger.info("OTEL tracing enabled | endpoint=%s", otel_endpoint)


# ---------------------------------------------------------------------------
# @traced decorator
# ---------------------------------------------------------------------------

def traced(name: str | None = None) -> Callable[[F], F]:
    """
    Instrument an async function with a span and a timing log line.

        @traced("blob_fetch")
        async def fetch(self, document): ...
    """
    def decorator(func: F) -> F:
        span_name = name or func.__qualname__

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            t0 = time.perf_counter()
            with _tracer.start_as_current_span(span_name):
                try:
                    result = await func(*args, **kwargs)
                except Exception as exc:
                    logger.error(
                        "trace | span=%s elapsed_ms=%.1f error=%s",
                        span_name, (time.perf_counter() - t0) * 1000, exc,
                    )
                    raise
            logger.debug(
                "trace | span=%s elapsed_ms=%.1f ok",
                span_name, (time.perf_counter() - t0) * 1000,
            )
            return result

        return wrapper  # type: ignore[return-value]
    return decorator
