"""Domain-specific extraction plugins."""

from docpipeline.extraction.plugins.preaviso import PreavisoExtraction, PreavisoExtractionPlugin

__all__ = ["PreavisoExtraction", "PreavisoExtractionPlugin"]
