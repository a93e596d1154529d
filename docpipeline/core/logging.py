"""Process-wide logging setup."""

from __future__ import annotations

import logging

from docpipeline.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str | None = None) -> None:
    """
    Configure the root logger once at process start.

    DEBUG when settings.debug is on, otherwise settings.log_level.
    Chatty client libraries are capped at WARNING.
    """
    if settings.debug:
        resolved = logging.DEBUG
    else:
        resolved = getattr(logging, (level or settings.log_level).upper(), logging.INFO)

    logging.basicConfig(level=resolved, format=LOG_FORMAT)

    for noisy in ("botocore", "aiobotocore", "httpx", "openai", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
