"""
Pooled cost allocation.

Merges usage across every invoice in the pool, prices the combined volume
per SKU and splits the pooled cost back to invoices in proportion to usage.

All operations are pure functions of the invoice collection passed in:
nothing is cached, because any invoice added or removed changes the result.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .tiered_cost import TieredCostCalculator
from aws_cost_pool.storage.models import Invoice, UsageRecord, valid_amount

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageAggregate:
    """Pool usage per SKU and the summed standalone cost."""
    usage_by_sku: Dict[str, float]
    standalone_cost_total: float


@dataclass(frozen=True)
class PoolSnapshot:
    """Pool-wide statistics, recomputed on every request."""
    total_customers: int
    usage_by_sku: Dict[str, float]
    standalone_cost_total: float
    pooled_cost_total: float
    estimated_savings: float
    savings_percentage: float


@dataclass(frozen=True)
class CustomerSavings:
    """What one invoice pays alone versus as its share of the pool."""
    standalone: float
    pooled: float
    savings: float
    percentage: float


@dataclass(frozen=True)
class SkuPoolSummary:
    """Per-SKU view of the pool."""
    sku_id: str
    total_usage: float
    standalone_cost: float
    pooled_cost: float
    customers: int

    @property
    def savings(self) -> float:
        return self.standalone_cost - self.pooled_cost


def effective_usage(record: UsageRecord) -> float:
    """Usage quantity that may take part in pooling.

    Negative, infinite or non-numeric quantities count as zero, which also
    gives the record a zero share of the pooled cost.
    """
    try:
        usage = float(record.usage_quantity)
    except (TypeError, ValueError):
        usage = math.nan
    if math.isnan(usage) or math.isinf(usage) or usage < 0:
        logger.warning(
            f"Invalid usage quantity {record.usage_quantity!r} for SKU {record.sku_id}, using 0"
        )
        return 0.0
    return usage


def _percentage(savings: float, standalone: float) -> float:
    return savings / standalone * 100 if standalone > 0 else 0.0


class PoolAllocator:
    """Computes pooled cost and savings over an invoice collection."""

    def __init__(self, calculator: Optional[TieredCostCalculator] = None):
        self.calculator = calculator or TieredCostCalculator()

    def aggregate_usage(self, invoices: Sequence[Invoice]) -> UsageAggregate:
        """Sum usage per SKU and standalone cost across all invoice records."""
        usage_by_sku: Dict[str, float] = {}
        standalone_cost_total = 0.0
        for invoice in invoices:
            for record in invoice.records:
                usage_by_sku[record.sku_id] = usage_by_sku.get(record.sku_id, 0.0) + effective_usage(record)
                standalone_cost_total += valid_amount(record.cost)
        return UsageAggregate(usage_by_sku=usage_by_sku, standalone_cost_total=standalone_cost_total)

    def pool_stats(self, invoices: Sequence[Invoice]) -> PoolSnapshot:
        """Price the pool's combined usage and compare it with standalone cost.

        Args:
            invoices: The current invoice collection

        Returns:
            PoolSnapshot with savings clamped at zero
        """
        aggregate = self.aggregate_usage(invoices)
        pooled_cost_total = sum(
            (self.calculator.cost(sku_id, usage) for sku_id, usage in aggregate.usage_by_sku.items()),
            0.0
        )
        estimated_savings = max(0.0, aggregate.standalone_cost_total - pooled_cost_total)

        snapshot = PoolSnapshot(
            total_customers=len(invoices),
            usage_by_sku=aggregate.usage_by_sku,
            standalone_cost_total=aggregate.standalone_cost_total,
            pooled_cost_total=pooled_cost_total,
            estimated_savings=estimated_savings,
            savings_percentage=_percentage(estimated_savings, aggregate.standalone_cost_total)
        )
        logger.info(
            f"Pool stats: {snapshot.total_customers} customers, "
            f"standalone ${snapshot.standalone_cost_total:.2f}, "
            f"pooled ${snapshot.pooled_cost_total:.2f}, "
            f"savings ${snapshot.estimated_savings:.2f} ({snapshot.savings_percentage:.1f}%)"
        )
        return snapshot

    def customer_savings(self, invoice: Invoice, invoices: Sequence[Invoice]) -> CustomerSavings:
        """Savings for one invoice as a member of the pool.

        Each record pays ``usage / pool_usage * cost(pool_usage)`` for its
        SKU, so the shares of all invoices add up to the pooled cost.

        Args:
            invoice: The invoice to evaluate
            invoices: The pool; ``invoice`` is counted even if absent from it

        Returns:
            CustomerSavings with savings clamped at zero
        """
        pool = list(invoices)
        if all(member.id != invoice.id for member in pool):
            pool.append(invoice)
        usage_by_sku = self.aggregate_usage(pool).usage_by_sku

        pooled = 0.0
        for record in invoice.records:
            pool_usage = usage_by_sku.get(record.sku_id, 0.0)
            if pool_usage == 0:
                continue
            share = effective_usage(record) / pool_usage
            pooled += share * self.calculator.cost(record.sku_id, pool_usage)

        standalone = invoice.total_cost
        savings = max(0.0, standalone - pooled)
        return CustomerSavings(
            standalone=standalone,
            pooled=pooled,
            savings=savings,
            percentage=_percentage(savings, standalone)
        )

    def sku_breakdown(self, invoices: Sequence[Invoice]) -> List[SkuPoolSummary]:
        """Per-SKU usage, standalone and pooled cost, sorted by SKU id."""
        usage: Dict[str, float] = {}
        standalone: Dict[str, float] = {}
        customers: Dict[str, set] = {}
        for invoice in invoices:
            for record in invoice.records:
                usage[record.sku_id] = usage.get(record.sku_id, 0.0) + effective_usage(record)
                standalone[record.sku_id] = standalone.get(record.sku_id, 0.0) + valid_amount(record.cost)
                customers.setdefault(record.sku_id, set()).add(invoice.id)

        return [
            SkuPoolSummary(
                sku_id=sku_id,
                total_usage=usage[sku_id],
                standalone_cost=standalone[sku_id],
                pooled_cost=self.calculator.cost(sku_id, usage[sku_id]),
                customers=len(customers[sku_id])
            )
            for sku_id in sorted(usage)
        ]
