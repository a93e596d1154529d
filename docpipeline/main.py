"""
FastAPI Application — Entry Point

Thin HTTP host for the document pipeline:

  POST /api/v1/documents/{document_id}/index
  POST /api/v1/tramites/{tramite_id}/extract
  GET  /health, /ready

Error handling:
  - PipelineError subclasses → ErrorResponse with the pipeline's reason code
    and trace id (404 / 422 / 502 / 503 / 500)
  - request validation errors → 422 VALIDATION_ERROR
  - anything else → 500 INTERNAL_ERROR, never a stack trace
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from docpipeline.api.v1.documents import router as pipeline_router
from docpipeline.core.config import settings
from docpipeline.core.errors import PipelineError
from docpipeline.core.logging import configure_logging
from docpipeline.db.session import check_db_health
from docpipeline.observability.tracing import TracingConfig
from docpipeline.schemas.pipeline import ErrorDetail, ErrorResponse, PipelineErrors

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Application lifespan: startup / shutdown hooks
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Starting document pipeline | env=%s chunking_version=%s embedding_model=%s",
        settings.app_env, settings.chunking_version, settings.embedding_model,
    )
    db_health = await check_db_health()
    if db_health["status"] != "ok":
        logger.warning("Database not reachable at startup: %s", db_health)

    yield

    logger.info("Shutting down document pipeline")
    from docpipeline.db.session import engine
    await engine.dispose()


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="Document Ingestion Pipeline",
        description=(
            "Text acquisition with OCR fallback, idempotent chunk indexing and "
            "schema-validated structured extraction."
        ),
        version="1.0.0",
        docs_url="/api/docs" if not settings.is_production else None,
        openapi_url="/api/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def request_logging(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start = time.perf_counter()

        response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        logger.info(
            "HTTP %s %s %d %.1fms",
            request.method, request.url.path, response.status_code,
            (time.perf_counter() - start) * 1000,
        )
        return response

    # ----------------------------------------------------------------
    # Exception handlers: uniform structured error responses
    # ----------------------------------------------------------------

    @app.exception_handler(PipelineError)
    async def pipeline_exception_handler(request: Request, exc: PipelineError):
        code = PipelineErrors.status_for(exc)
        log  = logger.error if code >= 500 else logger.warning
        log(
            "Pipeline error | path=%s code=%s trace=%s: %s",
            request.url.path, exc.code, exc.trace_id, exc.message,
        )
        return JSONResponse(
            status_code=code,
            content=PipelineErrors.from_exception(exc).model_dump(mode="json"),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        details = [
            ErrorDetail(
                field=".".join(str(loc) for loc in err["loc"]),
                message=err["msg"],
                code="VALIDATION_ERROR",
            )
            for err in exc.errors()
        ]
        body = ErrorResponse(
            error_code="VALIDATION_ERROR",
            message="Request validation failed.",
            details=details,
            request_id=request.headers.get("X-Request-ID"),
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=body.model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Catch-all for unhandled exceptions — never expose stack traces."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        logger.exception(
            "Unhandled exception | path=%s request_id=%s",
            request.url.path, request_id,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=PipelineErrors.internal_error(request_id).model_dump(mode="json"),
        )

    app.include_router(pipeline_router, prefix="/api/v1")

    # LangSmith / OTEL, driven by settings and environment
    TracingConfig.init()

    # ----------------------------------------------------------------
    # Health & readiness endpoints
    # ----------------------------------------------------------------

    @app.get("/health", tags=["Operations"], summary="Liveness probe")
    async def health() -> dict:
        return {"status": "ok", "service": "docpipeline"}

    @app.get("/ready", tags=["Operations"], summary="Readiness probe")
    async def readiness() -> JSONResponse:
        db_status = await check_db_health()
        if db_status["status"] != "ok":
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "not_ready", "database": db_status},
            )
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={"status": "ready", "database": db_status},
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "docpipeline.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.app_env == "development",
        log_level="debug" if settings.debug else "info",
    )
