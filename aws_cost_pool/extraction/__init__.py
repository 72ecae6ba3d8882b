"""
Invoice text extraction.

Turns unstructured invoice text into normalized usage records.
"""

from .extractor import ParseFailure, UsageRecordExtractor, deduplicate
from .strategies import (
    ExtractionStrategy,
    InvoiceDocument,
    LineScanStrategy,
    PositionedFragment,
    PositionGroupedStrategy,
    SingleFallbackStrategy,
    TaggedServiceStrategy,
    default_strategies,
)

__all__ = [
    "ExtractionStrategy",
    "InvoiceDocument",
    "LineScanStrategy",
    "ParseFailure",
    "PositionedFragment",
    "PositionGroupedStrategy",
    "SingleFallbackStrategy",
    "TaggedServiceStrategy",
    "UsageRecordExtractor",
    "deduplicate",
    "default_strategies",
]
