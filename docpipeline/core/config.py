"""
Pipeline configuration via environment variables (12-factor).
Pydantic BaseSettings validates and coerces all values at startup.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------
    database_url: str = "postgresql+asyncpg://localhost/docpipeline"

    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_echo_sql: bool = False   # set True in local dev to log queries

    # ------------------------------------------------------------------
    # AWS: S3 (blob fetch) + Textract (OCR)
    # ------------------------------------------------------------------
    aws_region: str = "us-east-1"
    s3_bucket:  str = "docpipeline-documents"

    # Local dev: set these; prod: use the task role (no static keys)
    aws_access_key_id:     str = ""
    aws_secret_access_key: str = ""

    ocr_timeout_seconds: int = 120

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------
    openai_api_key: str = ""

    embedding_model:       str = "text-embedding-3-small"
    embedding_dimensions:  int = 1536
    embedding_max_retries: int = 3

    # ------------------------------------------------------------------
    # LLM: structured extraction
    # ------------------------------------------------------------------
    llm_model:       str   = "gpt-4o"
    llm_temperature: float = 0.0
    llm_max_tokens:  int   = 3000

    extraction_max_attempts: int = 3

    # ------------------------------------------------------------------
    # Text acquisition quality gate
    # ------------------------------------------------------------------
    min_usable_text_chars: int   = 80
    min_alnum_ratio:       float = 0.55

    # ------------------------------------------------------------------
    # Chunking: chunking_version MUST change whenever the parameters do
    # ------------------------------------------------------------------
    chunk_target_tokens: int   = 900
    chunk_min_tokens:    int   = 600
    chunk_max_tokens:    int   = 1200
    chunk_overlap_ratio: float = 0.12
    chunking_version:    str   = "v1_text_char_3600_overlap_12"

    # ------------------------------------------------------------------
    # Tracing: OTEL is switched on via OTEL_ENABLED / OTEL_EXPORTER_OTLP_ENDPOINT
    # ------------------------------------------------------------------
    langsmith_api_key: str = ""
    langsmith_project: str = "docpipeline"

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------
    app_env:   str  = "development"   # development | staging | production
    debug:     bool = False
    log_level: str  = "INFO"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def aws_credentials(self) -> dict[str, str]:
        """Static keys for boto clients; empty means the default credential chain."""
        if not (self.aws_access_key_id and self.aws_secret_access_key):
            return {}
        return {
            "aws_access_key_id":     self.aws_access_key_id,
            "aws_secret_access_key": self.aws_secret_access_key,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
