"""
Usage record extraction strategies.

Each strategy reads an ``InvoiceDocument`` and returns the records it can
find on its own. Strategies overlap on purpose; the extractor merges their
results and removes duplicates.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .services import (
    AMOUNT_PATTERN,
    SERVICE_NAME_PATTERN,
    detect_region,
    estimate_usage,
    mapping_for,
    parse_number,
    record_for_service,
)
from aws_cost_pool.core.catalog import DEFAULT_CATALOG, PricingCatalog
from aws_cost_pool.storage.models import UsageRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PositionedFragment:
    """A run of text with its position on the page.

    ``y`` grows downward, so smaller values are higher on the page.
    """
    text: str
    x: float
    y: float
    page_index: int = 0


@dataclass(frozen=True)
class InvoiceDocument:
    """Invoice content handed to every strategy."""
    text: str
    fragments: Tuple[PositionedFragment, ...] = field(default_factory=tuple)


class ExtractionStrategy:
    """Interface shared by all extraction strategies."""
    name = "strategy"

    def applies_to(self, document: InvoiceDocument) -> bool:
        return True

    def extract(self, document: InvoiceDocument) -> List[UsageRecord]:
        raise NotImplementedError


class TaggedServiceStrategy(ExtractionStrategy):
    """Finds service names anywhere in the text and reads the amount after them.

    The look-ahead window ends at the next service name, so one line item
    cannot borrow the amount of the next.
    """
    name = "tagged-service"

    def __init__(self, catalog: Optional[PricingCatalog] = None, lookahead: int = 200):
        self.catalog = catalog or DEFAULT_CATALOG
        self.lookahead = lookahead

    def extract(self, document: InvoiceDocument) -> List[UsageRecord]:
        text = document.text
        matches = list(SERVICE_NAME_PATTERN.finditer(text))
        records = []
        for index, match in enumerate(matches):
            end = matches[index + 1].start() if index + 1 < len(matches) else len(text)
            record = record_for_service(
                mapping_for(match.group(0)),
                text,
                start=match.end(),
                end=end,
                limit=match.end() + self.lookahead,
                catalog=self.catalog
            )
            if record is not None:
                records.append(record)
        return records


class LineScanStrategy(ExtractionStrategy):
    """Reads the text line by line.

    Each service name on a line takes the first amount found after it, up
    to the next service name: later on the same line, or on the rest of
    the line and the next few lines.
    """
    name = "line-scan"

    def __init__(self, catalog: Optional[PricingCatalog] = None, max_lines_ahead: int = 3):
        self.catalog = catalog or DEFAULT_CATALOG
        self.max_lines_ahead = max_lines_ahead

    def extract(self, document: InvoiceDocument) -> List[UsageRecord]:
        lines = [line.strip() for line in document.text.splitlines() if line.strip()]
        return self.scan_lines(lines)

    def scan_lines(self, lines: Sequence[str]) -> List[UsageRecord]:
        records = []
        for index, line in enumerate(lines):
            matches = list(SERVICE_NAME_PATTERN.finditer(line))
            for position, match in enumerate(matches):
                if position + 1 < len(matches):
                    window_text = line[match.end():matches[position + 1].start()]
                else:
                    window_text = self._window_to_next_service(line[match.end():], lines[index + 1:])

                record = record_for_service(
                    mapping_for(match.group(0)),
                    window_text,
                    start=0,
                    end=len(window_text),
                    limit=len(window_text),
                    catalog=self.catalog
                )
                if record is not None:
                    records.append(record)
        return records

    def _window_to_next_service(self, rest: str, following_lines: Sequence[str]) -> str:
        """Rest of the line plus following lines, cut where the next service name starts."""
        window = [rest]
        for following in following_lines[:self.max_lines_ahead]:
            match = SERVICE_NAME_PATTERN.search(following)
            if match is not None:
                window.append(following[:match.start()])
                break
            window.append(following)
        return "\n".join(window)


class PositionGroupedStrategy(ExtractionStrategy):
    """Rebuilds lines from positioned fragments before scanning them.

    Fragments whose vertical positions round to the same multiple of
    ``y_tolerance`` on the same page form one line, read left to right.
    Lines keep top-to-bottom document order.
    """
    name = "position-grouped"

    def __init__(self, catalog: Optional[PricingCatalog] = None, y_tolerance: float = 4.0):
        if y_tolerance <= 0:
            raise ValueError("y_tolerance must be > 0")
        self.y_tolerance = y_tolerance
        self.line_scan = LineScanStrategy(catalog)

    def applies_to(self, document: InvoiceDocument) -> bool:
        return bool(document.fragments)

    def group_lines(self, fragments: Sequence[PositionedFragment]) -> List[str]:
        groups: Dict[Tuple[int, int], List[PositionedFragment]] = {}
        for fragment in fragments:
            if not (math.isfinite(fragment.x) and math.isfinite(fragment.y)):
                logger.warning(
                    f"Skipping fragment {fragment.text!r} at non-finite position ({fragment.x}, {fragment.y})"
                )
                continue
            key = (fragment.page_index, round(fragment.y / self.y_tolerance))
            groups.setdefault(key, []).append(fragment)

        lines = []
        for key in sorted(groups):
            ordered = sorted(groups[key], key=lambda f: (f.x, f.text))
            line = " ".join(f.text.strip() for f in ordered if f.text.strip())
            if line:
                lines.append(line)
        return lines

    def extract(self, document: InvoiceDocument) -> List[UsageRecord]:
        return self.line_scan.scan_lines(self.group_lines(document.fragments))


class SingleFallbackStrategy(ExtractionStrategy):
    """Turns the first positive amount in the text into one generic record.

    When every amount is zero the record carries a zero cost. Only used
    when every other strategy came back empty, so an invoice that plainly
    contains money is never stored without records.
    """
    name = "single-fallback"

    def __init__(self, catalog: Optional[PricingCatalog] = None, service_code: str = "EC2", unit: str = "hours"):
        self.catalog = catalog or DEFAULT_CATALOG
        self.service_code = service_code
        self.unit = unit

    def extract(self, document: InvoiceDocument) -> List[UsageRecord]:
        text = document.text
        cost = None
        position = 0
        while True:
            match = _next_amount(text, position)
            if match is None:
                break
            cost, position = match
            if cost > 0:
                break
        if cost is None:
            return []

        sku_id = self.catalog.default_sku
        return [UsageRecord(
            sku_id=sku_id,
            service_code=self.service_code,
            usage_quantity=estimate_usage(self.catalog, sku_id, cost),
            cost=cost,
            region=detect_region(text),
            unit=self.unit,
            usage_estimated=True
        )]


def _next_amount(text: str, position: int) -> Optional[Tuple[float, int]]:
    """Next currency amount at or after ``position`` and where scanning resumes."""
    match = AMOUNT_PATTERN.search(text, position)
    if match is None:
        return None
    return parse_number(match.group(1)), match.end()


def default_strategies(catalog: Optional[PricingCatalog] = None) -> List[ExtractionStrategy]:
    """The standard strategy order: tagged service, line scan, position grouped."""
    return [
        TaggedServiceStrategy(catalog),
        LineScanStrategy(catalog),
        PositionGroupedStrategy(catalog),
    ]
