"""
Service name table and invoice text patterns.

Maps the long-form AWS service names printed on invoices to catalog SKUs and
turns a matched service plus the text that follows it into a usage record.
"""

import math
import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from aws_cost_pool.core.catalog import PricingCatalog
from aws_cost_pool.storage.models import UsageRecord

DEFAULT_REGION = "us-east-1"


@dataclass(frozen=True)
class ServiceMapping:
    """How one AWS service on an invoice maps to catalog SKUs.

    ``sku_bands`` pairs an exclusive upper cost bound with a SKU template;
    the first band whose bound exceeds the line cost wins, so a single
    service can map to several instance sizes.
    """
    service_code: str
    names: Tuple[str, ...]
    unit: str
    sku_bands: Tuple[Tuple[float, str], ...]

    def sku_for(self, cost: float, region: str) -> str:
        for upper_bound, template in self.sku_bands:
            if cost < upper_bound:
                return template.format(region=region)
        return self.sku_bands[-1][1].format(region=region)


SERVICE_MAPPINGS: Tuple[ServiceMapping, ...] = (
    ServiceMapping(
        service_code="EC2",
        names=("Amazon Elastic Compute Cloud", "Amazon EC2"),
        unit="hours",
        sku_bands=(
            (10, "EC2-t3.micro-{region}"),
            (50, "EC2-t3.small-{region}"),
            (math.inf, "EC2-t3.medium-{region}"),
        ),
    ),
    ServiceMapping(
        service_code="S3",
        names=("Amazon Simple Storage Service", "Amazon S3"),
        unit="GB",
        sku_bands=((math.inf, "S3-Standard-{region}"),),
    ),
    ServiceMapping(
        service_code="RDS",
        names=("Amazon Relational Database Service", "Amazon RDS Service", "Amazon RDS"),
        unit="hours",
        sku_bands=(
            (30, "RDS-db.t3.micro-{region}"),
            (math.inf, "RDS-db.t3.small-{region}"),
        ),
    ),
    ServiceMapping(
        service_code="DataTransfer",
        names=("AWS Data Transfer",),
        unit="GB",
        sku_bands=((math.inf, "DataTransfer-InternetEgress-{region}"),),
    ),
    ServiceMapping(
        service_code="CloudFront",
        names=("Amazon CloudFront",),
        unit="GB",
        sku_bands=((math.inf, "CloudFront-DataTransfer-{region}"),),
    ),
    ServiceMapping(
        service_code="SES",
        names=("Amazon Simple Email Service", "Amazon SES"),
        unit="emails",
        sku_bands=((math.inf, "SES-EmailSending-{region}"),),
    ),
    ServiceMapping(
        service_code="SNS",
        names=("Amazon Simple Notification Service", "Amazon SNS"),
        unit="requests",
        sku_bands=((math.inf, "SNS-Requests-{region}"),),
    ),
)


def _normalize_name(name: str) -> str:
    return " ".join(name.split()).lower()


_MAPPING_BY_NAME: Dict[str, ServiceMapping] = {
    _normalize_name(name): mapping
    for mapping in SERVICE_MAPPINGS
    for name in mapping.names
}

# Longest names first so "Amazon RDS Service" wins over "Amazon RDS"
SERVICE_NAME_PATTERN = re.compile(
    r"\b(?:"
    + "|".join(
        r"\s+".join(re.escape(word) for word in name.split())
        for name in sorted(_MAPPING_BY_NAME, key=len, reverse=True)
    )
    + r")\b",
    re.IGNORECASE,
)

AMOUNT_PATTERN = re.compile(r"(?:\$|\bUSD)\s*([0-9][0-9,]*(?:\.[0-9]+)?)")

USAGE_PATTERN = re.compile(
    r"(?<![$\d.,])([0-9][0-9,]*(?:\.[0-9]+)?)\s*"
    r"(GB-Mo(?:nth)?|GB|Hrs|Hours|Requests|Emails)\b",
    re.IGNORECASE,
)

REGION_PATTERN = re.compile(
    r"\b(?:us|eu|ap|sa|ca|me|af|il|mx)(?:-gov)?-"
    r"(?:north|south|east|west|central|northeast|southeast|northwest|southwest)-\d\b"
)

_UNIT_NAMES = {
    "gb-mo": "GB-Mo",
    "gb-month": "GB-Mo",
    "gb": "GB",
    "hrs": "hours",
    "hours": "hours",
    "requests": "requests",
    "emails": "emails",
}


def mapping_for(matched_name: str) -> ServiceMapping:
    """Look up the mapping for text matched by SERVICE_NAME_PATTERN."""
    return _MAPPING_BY_NAME[_normalize_name(matched_name)]


def parse_number(raw: str) -> float:
    return float(raw.replace(",", ""))


def _first_match(pattern, text: str, start: int, end: int, limit: int):
    match = pattern.search(text, start, end)
    if match is None or match.start() >= limit:
        return None
    return match


def detect_region(text: str, start: int = 0, end: Optional[int] = None, limit: Optional[int] = None) -> str:
    end = len(text) if end is None else end
    match = _first_match(REGION_PATTERN, text, start, end, end if limit is None else limit)
    return match.group(0) if match else DEFAULT_REGION


def estimate_usage(catalog: PricingCatalog, sku_id: str, cost: float) -> float:
    """Placeholder usage for pooling when the invoice states no quantity."""
    baseline = catalog.baseline_unit_price(sku_id)
    if not baseline:
        return 0.0
    return round(cost / baseline, 2)


def record_for_service(
    mapping: ServiceMapping,
    text: str,
    start: int,
    end: int,
    limit: int,
    catalog: PricingCatalog
) -> Optional[UsageRecord]:
    """Build a usage record from the text following a service name.

    Looks in ``text[start:end]`` for the first currency amount and a usage
    quantity with unit, each of which must begin before ``limit``. Only a
    region printed between the service name and the amount is read, so
    the SKU does not depend on how far past the amount a caller looks.
    Zero charges produce no record.

    Returns:
        The record, or None if no positive amount follows the service name
    """
    amount = _first_match(AMOUNT_PATTERN, text, start, end, limit)
    if amount is None:
        return None
    cost = parse_number(amount.group(1))
    if cost <= 0:
        return None

    region = detect_region(text, start, amount.start())
    sku_id = mapping.sku_for(cost, region)

    usage_match = _first_match(USAGE_PATTERN, text, start, end, limit)
    if usage_match is not None:
        usage = parse_number(usage_match.group(1))
        unit = _UNIT_NAMES.get(usage_match.group(2).lower(), mapping.unit)
        estimated = False
    else:
        usage = estimate_usage(catalog, sku_id, cost)
        unit = mapping.unit
        estimated = True

    return UsageRecord(
        sku_id=sku_id,
        service_code=mapping.service_code,
        usage_quantity=usage,
        cost=cost,
        region=region,
        unit=unit,
        usage_estimated=estimated
    )
