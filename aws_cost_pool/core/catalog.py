"""
Pricing catalog and tier tables.

Holds the per-SKU volume-discount tiers used to price pooled usage.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

INF = math.inf


@dataclass(frozen=True)
class PricingTier:
    """Half-open usage range [min_usage, max_usage) billed at unit_price."""
    min_usage: float
    max_usage: float
    unit_price: float

    def __post_init__(self):
        """Validate the tier bounds and price."""
        if self.min_usage < 0:
            raise ValueError("min_usage cannot be negative")
        if not self.max_usage > self.min_usage:
            raise ValueError("max_usage must be greater than min_usage")
        if self.unit_price < 0 or math.isnan(self.unit_price):
            raise ValueError("unit_price cannot be negative")


def validate_tiers(sku_id: str, tiers: Sequence[PricingTier]) -> None:
    """Check that a tier table is ascending, contiguous and unbounded.

    Raises:
        ValueError: If the table is empty, has gaps or overlaps, does not
            start at zero or does not end at infinity
    """
    if not tiers:
        raise ValueError(f"SKU '{sku_id}' has no pricing tiers")
    if tiers[0].min_usage != 0:
        raise ValueError(f"First tier of SKU '{sku_id}' must start at 0")
    for previous, tier in zip(tiers, tiers[1:]):
        if tier.min_usage != previous.max_usage:
            raise ValueError(
                f"Tiers of SKU '{sku_id}' are not contiguous: "
                f"{previous.max_usage} -> {tier.min_usage}"
            )
    if tiers[-1].max_usage != INF:
        raise ValueError(f"Last tier of SKU '{sku_id}' must be unbounded")


class PricingCatalog:
    """Read-only registry of tier tables keyed by SKU id.

    Lookups never fail: a SKU missing from the catalog is priced with the
    default SKU's table.
    """

    def __init__(self, tiers_by_sku: Dict[str, Sequence[PricingTier]], default_sku: str):
        for sku_id, tiers in tiers_by_sku.items():
            validate_tiers(sku_id, tiers)
        if default_sku not in tiers_by_sku:
            raise ValueError(f"Default SKU '{default_sku}' is not in the catalog")
        self._tiers = {sku_id: tuple(tiers) for sku_id, tiers in tiers_by_sku.items()}
        self.default_sku = default_sku

    def has_sku(self, sku_id: str) -> bool:
        return sku_id in self._tiers

    def sku_ids(self) -> List[str]:
        return sorted(self._tiers)

    def tiers_for(self, sku_id: str) -> List[PricingTier]:
        """Get the ordered tier table for a SKU.

        Args:
            sku_id: SKU identifier

        Returns:
            Tier list for the SKU, or the default SKU's tiers if unknown
        """
        tiers = self._tiers.get(sku_id)
        if tiers is None:
            logger.warning(
                f"No pricing tiers found for SKU {sku_id!r}, using {self.default_sku!r}"
            )
            tiers = self._tiers[self.default_sku]
        return list(tiers)

    def baseline_unit_price(self, sku_id: str) -> Optional[float]:
        """List price used to turn a cost into an estimated usage quantity.

        This is the first non-zero unit price of the SKU's table, so free
        allowances do not make the estimate divide by zero.

        Returns:
            The baseline price, or None if every tier is free
        """
        for tier in self.tiers_for(sku_id):
            if tier.unit_price > 0:
                return tier.unit_price
        return None


def _tiers(*bands) -> List[PricingTier]:
    """Build a contiguous table from (upper_bound, unit_price) pairs."""
    tiers = []
    lower = 0.0
    for upper, price in bands:
        tiers.append(PricingTier(min_usage=lower, max_usage=upper, unit_price=price))
        lower = upper
    return tiers


DEFAULT_SKU = "EC2"

# Built-in tables. Prices are configuration data; load a YAML catalog to override.
DEFAULT_CATALOG = PricingCatalog({
    "EC2": _tiers((744, 0.0464), (8760, 0.0418), (INF, 0.0372)),
    "S3": _tiers((50000, 0.023), (450000, 0.022), (INF, 0.021)),
    "EC2-t3.micro-us-east-1": _tiers(
        (750, 0.0), (8760, 0.0104), (87600, 0.0094), (INF, 0.0084)
    ),
    "EC2-t3.small-us-east-1": _tiers((8760, 0.0208), (87600, 0.0188), (INF, 0.0168)),
    "EC2-t3.medium-us-east-1": _tiers((8760, 0.0416), (87600, 0.0376), (INF, 0.0336)),
    "S3-Standard-us-east-1": _tiers((50000, 0.023), (450000, 0.022), (INF, 0.021)),
    "S3-IA-us-east-1": _tiers((INF, 0.0125)),
    "S3-Glacier-us-east-1": _tiers((INF, 0.004)),
    "RDS-db.t3.micro-us-east-1": _tiers(
        (750, 0.0), (8760, 0.017), (87600, 0.015), (INF, 0.013)
    ),
    "RDS-db.t3.small-us-east-1": _tiers((8760, 0.034), (87600, 0.031), (INF, 0.028)),
    "DataTransfer-InternetEgress-us-east-1": _tiers(
        (1, 0.0), (10000, 0.09), (50000, 0.085), (150000, 0.070), (INF, 0.050)
    ),
    "CloudFront-DataTransfer-us-east-1": _tiers(
        (10000, 0.085), (50000, 0.080), (150000, 0.060), (INF, 0.040)
    ),
    "SES-EmailSending-us-east-1": _tiers((62000, 0.0), (INF, 0.0001)),
    "SNS-Requests-us-east-1": _tiers((1000000, 0.0), (INF, 0.0000005)),
}, default_sku=DEFAULT_SKU)
