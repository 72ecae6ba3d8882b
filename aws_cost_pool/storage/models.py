"""
Data models for storage layer.

Defines the invoice entities shared by extraction, pooling and persistence.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Tuple


@dataclass(frozen=True)
class UsageRecord:
    """One line of attributed spend for one invoice.

    ``usage_estimated`` marks quantities derived from cost and a baseline
    unit price rather than read from the invoice. Estimated quantities are
    placeholders for pooling arithmetic, not billing figures.
    """
    sku_id: str
    service_code: str
    usage_quantity: float
    cost: float
    region: str = "us-east-1"
    unit: str = "units"
    usage_estimated: bool = False


@dataclass(frozen=True)
class Invoice:
    """Immutable invoice assembled from one successful extraction.

    Once constructed, an invoice is never modified; it can only be removed
    from its repository by id.
    """
    id: str
    customer_name: str
    records: Tuple[UsageRecord, ...]
    uploaded_at: datetime
    source_file_name: str = ""

    def __post_init__(self):
        """Validate identity fields and freeze the record sequence."""
        if not self.id:
            raise ValueError("id is required and cannot be empty")
        if not self.customer_name or not self.customer_name.strip():
            raise ValueError("customer_name is required and cannot be empty")
        object.__setattr__(self, "records", tuple(self.records))

    @property
    def total_cost(self) -> float:
        """Sum of record costs, skipping values that are not valid amounts."""
        return sum(valid_amount(record.cost) for record in self.records)


def valid_amount(value) -> float:
    """Return ``value`` as a float, or 0.0 if it is not a finite, non-negative number."""
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(amount) or math.isinf(amount) or amount < 0:
        return 0.0
    return amount
