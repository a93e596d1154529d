"""
Domain-type → ExtractionPlugin registry.

The set of domain types is a fixed enumeration; adding a document kind
means adding a DomainType member and registering its plugin.
"""

from __future__ import annotations

import logging
from enum import Enum

from docpipeline.core.errors import ExtractionInputError
from docpipeline.extraction.plugins.preaviso import PreavisoExtractionPlugin
from docpipeline.extraction.types import ExtractionPlugin

logger = logging.getLogger(__name__)


class DomainType(str, Enum):
    PREAVISO = "preaviso"


class PluginRegistry:

    def __init__(self, plugins: list[ExtractionPlugin] | None = None) -> None:
        self._plugins: dict[DomainType, ExtractionPlugin] = {}
        for plugin in plugins or []:
            self.register(plugin)

    def register(self, plugin: ExtractionPlugin) -> None:
        domain = DomainType(plugin.domain_type)
        if domain in self._plugins:
            logger.warning("PluginRegistry | replacing plugin for domain=%s", domain.value)
        self._plugins[domain] = plugin

    def get(self, domain_type: str | DomainType) -> ExtractionPlugin:
        try:
            return self._plugins[DomainType(domain_type)]
        except (ValueError, KeyError):
            raise ExtractionInputError(
                f"No extraction plugin registered for domain type {domain_type!r}",
                code="unknown_domain_type",
                details={"domain_type": str(domain_type)},
            ) from None

    def domain_types(self) -> list[str]:
        return [d.value for d in self._plugins]


def default_registry() -> PluginRegistry:
    return PluginRegistry([PreavisoExtractionPlugin()])
