"""
Tiered cost calculation.

Prices a total usage against a SKU's cumulative volume tiers.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from .catalog import DEFAULT_CATALOG, PricingCatalog, PricingTier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TierCharge:
    """Usage billed within one tier and what it costs."""
    tier: PricingTier
    usage: float
    cost: float


class TieredCostCalculator:
    """Computes cumulative bracket-based cost for a SKU.

    Tiers are half-open intervals [min_usage, max_usage): a usage exactly on
    a boundary belongs to the upper tier, and each unit is billed once.
    """

    def __init__(self, catalog: Optional[PricingCatalog] = None):
        self.catalog = catalog or DEFAULT_CATALOG

    def breakdown(self, sku_id: str, total_usage: float) -> List[TierCharge]:
        """Split a total usage into per-tier charges.

        Args:
            sku_id: SKU identifier (unknown SKUs use the default table)
            total_usage: Aggregate usage to price

        Returns:
            Charges for every tier that receives usage, in tier order
        """
        # Written as a negated comparison so NaN also yields no charges
        if not total_usage > 0:
            return []

        charges = []
        usage_accounted_for = 0.0
        for tier in self.catalog.tiers_for(sku_id):
            usage_in_tier = min(tier.max_usage, total_usage) - max(tier.min_usage, usage_accounted_for)
            usage_in_tier = max(0.0, usage_in_tier)
            if usage_in_tier > 0:
                charge = TierCharge(tier=tier, usage=usage_in_tier, cost=usage_in_tier * tier.unit_price)
                charges.append(charge)
                usage_accounted_for += usage_in_tier
                logger.debug(
                    f"SKU {sku_id}: usage {tier.min_usage}-{min(tier.max_usage, total_usage)} "
                    f"@ ${tier.unit_price} = ${charge.cost:.4f}"
                )
            if usage_accounted_for >= total_usage:
                break
        return charges

    def cost(self, sku_id: str, total_usage: float) -> float:
        """Total tiered cost of ``total_usage`` units of ``sku_id``.

        Returns:
            Non-negative cost; 0.0 for zero or negative usage
        """
        return sum((charge.cost for charge in self.breakdown(sku_id, total_usage)), 0.0)
