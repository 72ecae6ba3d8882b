"""
Configuration management and loading.

Loads pricing catalogs from YAML so tier prices stay configuration data.
"""

import math
from pathlib import Path
from typing import Dict, List

import yaml

from aws_cost_pool.core.catalog import DEFAULT_SKU, PricingCatalog, PricingTier


def load_pricing_catalog(path: str) -> PricingCatalog:
    """Load and validate a pricing catalog from a YAML file.

    Strict validation ensures a typo in a tier table fails loudly instead
    of silently mispricing the pool.

    Expected layout::

        default_sku: EC2
        skus:
          EC2:
            - {min_usage: 0, max_usage: 744, unit_price: 0.0464}
            - {min_usage: 744, max_usage: .inf, unit_price: 0.0418}

    Args:
        path: Path to YAML catalog file

    Returns:
        Validated PricingCatalog

    Raises:
        FileNotFoundError: If catalog file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If the catalog is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Pricing catalog file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in catalog file {path}: {e}")

    if not raw_config:
        raise ValueError("Catalog file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Catalog file must contain a mapping")

    allowed_top_keys = {'default_sku', 'skus'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown catalog keys: {unknown_keys}")

    if 'skus' not in raw_config:
        raise ValueError("Missing required 'skus' section")

    skus_data = raw_config['skus']
    if not isinstance(skus_data, dict) or not skus_data:
        raise ValueError("'skus' must be a non-empty dictionary")

    tiers_by_sku: Dict[str, List[PricingTier]] = {}
    for sku_id, tiers_data in skus_data.items():
        if not isinstance(tiers_data, list) or not tiers_data:
            raise ValueError(f"SKU '{sku_id}' must have a non-empty list of tiers")
        tiers_by_sku[str(sku_id)] = [
            _parse_tier(tier_data, f"skus.{sku_id}[{index}]", is_last=index == len(tiers_data) - 1)
            for index, tier_data in enumerate(tiers_data)
        ]

    default_sku = raw_config.get('default_sku', DEFAULT_SKU)
    if not isinstance(default_sku, str) or default_sku not in tiers_by_sku:
        raise ValueError(f"'default_sku' must name a SKU in 'skus', got {default_sku!r}")

    return PricingCatalog(tiers_by_sku, default_sku=default_sku)


def _parse_tier(data: Dict, path: str, is_last: bool) -> PricingTier:
    """Parse and validate one pricing tier.

    Args:
        data: Tier data
        path: Path for error messages
        is_last: Whether ``max_usage`` may be omitted (meaning unbounded)

    Returns:
        Validated PricingTier

    Raises:
        ValueError: If the tier is invalid
    """
    if not isinstance(data, dict):
        raise ValueError(f"Tier {path} must be a dictionary")

    allowed_keys = {'min_usage', 'max_usage', 'unit_price'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    for key in ('min_usage', 'unit_price'):
        if key not in data:
            raise ValueError(f"Missing required '{key}' in {path}")

    if 'max_usage' in data:
        max_usage = _parse_number(data['max_usage'], 'max_usage', path)
    elif is_last:
        max_usage = math.inf
    else:
        raise ValueError(f"Missing required 'max_usage' in {path}")

    try:
        return PricingTier(
            min_usage=_parse_number(data['min_usage'], 'min_usage', path),
            max_usage=max_usage,
            unit_price=_parse_number(data['unit_price'], 'unit_price', path)
        )
    except ValueError as e:
        raise ValueError(f"Invalid tier {path}: {e}")


def _parse_number(value, key: str, path: str) -> float:
    """Accept ints, floats and the strings 'inf'/'infinity'."""
    if isinstance(value, bool):
        raise ValueError(f"'{key}' in {path} must be a number")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and value.strip().lower() in ('inf', 'infinity', '.inf'):
        return math.inf
    raise ValueError(f"'{key}' in {path} must be a number")
