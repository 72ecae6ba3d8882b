"""
Unit tests for the pricing catalog and tiered cost calculation.

Tests tier accuracy, boundary handling, monotonicity and fallback pricing.
"""

import math
import random

import pytest

from aws_cost_pool.core.catalog import (
    DEFAULT_CATALOG,
    INF,
    PricingCatalog,
    PricingTier,
    validate_tiers,
)
from aws_cost_pool.core.tiered_cost import TieredCostCalculator


class TestPricingTier:
    """Test PricingTier validation."""

    def test_valid_tier(self):
        """Verify a regular tier is accepted."""
        tier = PricingTier(min_usage=0, max_usage=744, unit_price=0.0464)
        assert tier.max_usage == 744

    def test_negative_min_usage_raises_error(self):
        with pytest.raises(ValueError, match="min_usage cannot be negative"):
            PricingTier(min_usage=-1, max_usage=10, unit_price=0.1)

    def test_empty_range_raises_error(self):
        with pytest.raises(ValueError, match="max_usage must be greater than min_usage"):
            PricingTier(min_usage=10, max_usage=10, unit_price=0.1)

    def test_negative_price_raises_error(self):
        with pytest.raises(ValueError, match="unit_price cannot be negative"):
            PricingTier(min_usage=0, max_usage=INF, unit_price=-0.1)


class TestPricingCatalog:
    """Test catalog lookups and validation."""

    def test_ec2_tiers(self):
        """Verify the generic EC2 table."""
        tiers = DEFAULT_CATALOG.tiers_for("EC2")
        assert [(t.min_usage, t.max_usage, t.unit_price) for t in tiers] == [
            (0, 744, 0.0464),
            (744, 8760, 0.0418),
            (8760, INF, 0.0372),
        ]

    def test_unknown_sku_uses_default_table(self, caplog):
        """Verify unknown SKUs fall back to the default table with a warning."""
        tiers = DEFAULT_CATALOG.tiers_for("Lambda-Requests-us-east-1")
        assert tiers == DEFAULT_CATALOG.tiers_for("EC2")
        assert "No pricing tiers found for SKU 'Lambda-Requests-us-east-1'" in caplog.text

    def test_has_sku(self):
        assert DEFAULT_CATALOG.has_sku("S3-Standard-us-east-1")
        assert not DEFAULT_CATALOG.has_sku("S3-Standard-eu-west-1")

    def test_baseline_skips_free_tier(self):
        """Verify the baseline price is the first non-zero tier price."""
        assert DEFAULT_CATALOG.baseline_unit_price("EC2-t3.micro-us-east-1") == 0.0104
        assert DEFAULT_CATALOG.baseline_unit_price("SES-EmailSending-us-east-1") == 0.0001
        assert DEFAULT_CATALOG.baseline_unit_price("EC2") == 0.0464

    def test_baseline_none_when_all_tiers_free(self):
        catalog = PricingCatalog(
            {"FREE": [PricingTier(0, INF, 0.0)]},
            default_sku="FREE"
        )
        assert catalog.baseline_unit_price("FREE") is None

    def test_default_sku_must_exist(self):
        with pytest.raises(ValueError, match="Default SKU 'X' is not in the catalog"):
            PricingCatalog({"EC2": [PricingTier(0, INF, 0.1)]}, default_sku="X")

    def test_gap_between_tiers_raises_error(self):
        """Verify the 744/745 style gap is rejected."""
        tiers = [PricingTier(0, 744, 0.0464), PricingTier(745, INF, 0.0418)]
        with pytest.raises(ValueError, match="not contiguous"):
            validate_tiers("EC2", tiers)

    def test_bounded_last_tier_raises_error(self):
        tiers = [PricingTier(0, 100, 0.1)]
        with pytest.raises(ValueError, match="must be unbounded"):
            validate_tiers("X", tiers)

    def test_first_tier_must_start_at_zero(self):
        tiers = [PricingTier(5, INF, 0.1)]
        with pytest.raises(ValueError, match="must start at 0"):
            validate_tiers("X", tiers)

    def test_empty_table_raises_error(self):
        with pytest.raises(ValueError, match="has no pricing tiers"):
            validate_tiers("X", [])


class TestTieredCost:
    """Test cumulative bracket pricing."""

    def setup_method(self):
        self.calculator = TieredCostCalculator()

    def test_ec2_cost_across_two_tiers(self):
        """744 h at $0.0464 + 256 h at $0.0418."""
        assert self.calculator.cost("EC2", 1000) == pytest.approx(45.2224, abs=1e-6)

    def test_ec2_cost_across_three_tiers(self):
        expected = 744 * 0.0464 + (8760 - 744) * 0.0418 + 1240 * 0.0372
        assert self.calculator.cost("EC2", 10000) == pytest.approx(expected, abs=1e-6)

    def test_usage_on_boundary_belongs_to_lower_tiers_only(self):
        """Exactly 744 units are all billed in the first tier."""
        assert self.calculator.cost("EC2", 744) == pytest.approx(744 * 0.0464, abs=1e-9)

    def test_first_unit_past_boundary_uses_next_price(self):
        expected = 744 * 0.0464 + 0.0418
        assert self.calculator.cost("EC2", 745) == pytest.approx(expected, abs=1e-9)

    def test_fractional_usage_at_boundary(self):
        expected = 744 * 0.0464 + 0.5 * 0.0418
        assert self.calculator.cost("EC2", 744.5) == pytest.approx(expected, abs=1e-9)

    @pytest.mark.parametrize("sku_id", DEFAULT_CATALOG.sku_ids())
    def test_zero_usage_costs_nothing(self, sku_id):
        assert self.calculator.cost(sku_id, 0) == 0

    def test_negative_usage_costs_nothing(self):
        assert self.calculator.cost("EC2", -50) == 0

    def test_nan_usage_costs_nothing(self):
        assert self.calculator.cost("EC2", math.nan) == 0

    def test_free_tier(self):
        """First 750 t3.micro hours are free."""
        assert self.calculator.cost("EC2-t3.micro-us-east-1", 750) == 0
        assert self.calculator.cost("EC2-t3.micro-us-east-1", 1750) == pytest.approx(10.4, abs=1e-9)

    def test_unknown_sku_priced_with_default_table(self):
        assert self.calculator.cost("Unknown-SKU", 1000) == pytest.approx(45.2224, abs=1e-6)

    def test_increasing_prices_supported(self):
        """Tier prices do not have to fall with volume."""
        catalog = PricingCatalog(
            {"X": [PricingTier(0, 10, 1.0), PricingTier(10, INF, 2.0)]},
            default_sku="X"
        )
        calculator = TieredCostCalculator(catalog)
        assert calculator.cost("X", 15) == pytest.approx(20.0)

    def test_breakdown_matches_cost(self):
        charges = self.calculator.breakdown("EC2", 1000)
        assert [c.usage for c in charges] == [744, 256]
        assert sum(c.cost for c in charges) == pytest.approx(self.calculator.cost("EC2", 1000))

    def test_breakdown_empty_for_zero_usage(self):
        assert self.calculator.breakdown("EC2", 0) == []

    @pytest.mark.parametrize("seed", range(10))
    @pytest.mark.parametrize("sku_id", DEFAULT_CATALOG.sku_ids())
    def test_cost_is_monotonic(self, sku_id, seed):
        """cost(u1) <= cost(u2) whenever u1 <= u2."""
        rng = random.Random(seed)
        for _ in range(50):
            u1, u2 = sorted(rng.uniform(0, 2_000_000) for _ in range(2))
            assert self.calculator.cost(sku_id, u1) <= self.calculator.cost(sku_id, u2)

    def test_units_counted_once(self):
        """Total billed usage equals the requested usage."""
        for usage in (1, 743.9, 744, 8760, 8761, 123456.7):
            charges = self.calculator.breakdown("EC2", usage)
            assert sum(c.usage for c in charges) == pytest.approx(usage)
