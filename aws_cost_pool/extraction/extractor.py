"""
Usage record extraction pipeline.

Runs the extraction strategies in a fixed order, merges their results and
falls back to a single generic record when nothing else matched.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from .strategies import (
    ExtractionStrategy,
    InvoiceDocument,
    PositionedFragment,
    SingleFallbackStrategy,
    default_strategies,
)
from aws_cost_pool.core.catalog import DEFAULT_CATALOG, PricingCatalog
from aws_cost_pool.storage.models import UsageRecord

logger = logging.getLogger(__name__)


class ParseFailure(Exception):
    """Raised when no strategy, including the fallback, produced a record."""
    def __init__(self, message: str, text_length: int = 0):
        super().__init__(message)
        self.text_length = text_length


def deduplicate(records: Sequence[UsageRecord]) -> List[UsageRecord]:
    """Keep the first record for each (sku_id, cost) pair, preserving order."""
    seen = set()
    unique = []
    for record in records:
        key: Tuple[str, float] = (record.sku_id, record.cost)
        if key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return unique


class UsageRecordExtractor:
    """Turns raw invoice text into normalized usage records.

    Output depends only on the input and the strategy order: the same text
    and fragments always yield the same records in the same order.

    An optional ``primary`` strategy (such as a generative-AI parser) is
    tried first. Its records are used when it returns any; otherwise the
    deterministic strategies run as if it were absent.
    """

    def __init__(
        self,
        strategies: Optional[Sequence[ExtractionStrategy]] = None,
        fallback: Optional[ExtractionStrategy] = None,
        primary: Optional[ExtractionStrategy] = None,
        catalog: Optional[PricingCatalog] = None
    ):
        catalog = catalog or DEFAULT_CATALOG
        self.strategies = list(strategies) if strategies is not None else default_strategies(catalog)
        self.fallback = fallback or SingleFallbackStrategy(catalog)
        self.primary = primary

    def extract(
        self,
        raw_text: str,
        fragments: Optional[Sequence[PositionedFragment]] = None
    ) -> List[UsageRecord]:
        """Extract usage records from invoice text.

        Args:
            raw_text: UTF-8 text of the invoice
            fragments: Optional positioned fragments of the same document

        Returns:
            Deduplicated records in discovery order

        Raises:
            ParseFailure: If no record can be produced from the input
        """
        document = InvoiceDocument(text=raw_text or "", fragments=tuple(fragments or ()))

        if self.primary is not None:
            records = deduplicate(self.primary.extract(document))
            if records:
                logger.info(f"{self.primary.name} produced {len(records)} records")
                return records
            logger.info(f"{self.primary.name} produced no records, using built-in strategies")

        candidates: List[UsageRecord] = []
        for strategy in self.strategies:
            if not strategy.applies_to(document):
                continue
            found = strategy.extract(document)
            logger.debug(f"{strategy.name} found {len(found)} candidate records")
            candidates.extend(found)

        records = deduplicate(candidates)
        if not records:
            records = self.fallback.extract(document)
            if records:
                logger.warning(
                    f"No recognized services in invoice text, "
                    f"{self.fallback.name} produced {len(records)} generic record(s)"
                )

        if not records:
            raise ParseFailure(
                "No usage records could be extracted from the invoice",
                text_length=len(document.text)
            )
        return records
