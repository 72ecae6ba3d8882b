"""
OpenAI-backed invoice parser.

Asks a chat model to break an invoice into SKU line items. Any failure of
the service or any malformed answer yields no records, which makes the
extractor fall back to its built-in strategies.
"""

import json
import logging
import math
from typing import Any, List, Optional

from openai import OpenAI, OpenAIError

from ..extraction.strategies import ExtractionStrategy, InvoiceDocument
from ..storage.models import UsageRecord

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = """
You are an AWS billing expert. Parse this AWS invoice and break down services into specific SKUs.

INVOICE TEXT:
{text}

Return ONLY valid JSON in this exact format:
{{
  "skus": [
    {{
      "skuId": "SERVICE-TYPE-REGION",
      "service": "EC2|S3|RDS|CloudFront|DataTransfer|SES|SNS",
      "cost": <number>,
      "estimatedUsage": <number>,
      "unit": "hours|GB|requests|emails",
      "region": "us-east-1"
    }}
  ]
}}

SKU RULES:
1. "Amazon Elastic Compute Cloud": cost < $10 -> "EC2-t3.micro-us-east-1",
   $10-50 -> "EC2-t3.small-us-east-1", > $50 -> "EC2-t3.medium-us-east-1"
2. "Amazon Simple Storage Service": "S3-Standard-us-east-1"
3. "Amazon RDS Service": cost < $30 -> "RDS-db.t3.micro-us-east-1", else "RDS-db.t3.small-us-east-1"
4. "AWS Data Transfer": "DataTransfer-InternetEgress-us-east-1"
5. "Amazon CloudFront": "CloudFront-DataTransfer-us-east-1"
6. "Amazon Simple Email Service": "SES-EmailSending-us-east-1"
7. "Amazon Simple Notification Service": "SNS-Requests-us-east-1"

Extract actual costs from the invoice, ignore $0.00 charges, assume us-east-1 if no region is given.
"""


class InvalidModelOutput(ValueError):
    """The model answered, but not with the expected JSON structure."""


class OpenAIInvoiceParser(ExtractionStrategy):
    """Extraction strategy that delegates parsing to an OpenAI chat model."""
    name = "openai"

    def __init__(self, model: str, client: Optional[Any] = None):
        """Initialize the parser.

        Args:
            model: OpenAI model name (required)
            client: Preconfigured OpenAI client (defaults to ``OpenAI()``)

        Raises:
            ValueError: If model is missing/empty
            openai.OpenAIError: If no client is given and none can be created
        """
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")

        self.model = model
        self.client = client or OpenAI()

    def extract(self, document: InvoiceDocument) -> List[UsageRecord]:
        """Parse the invoice through the model.

        Returns:
            Records with positive cost, or an empty list if the request
            failed or the answer was not valid
        """
        if not document.text.strip():
            return []

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": PROMPT_TEMPLATE.format(text=document.text)}],
                temperature=0
            )
            content = response.choices[0].message.content or ""
            return parse_model_output(content)
        except OpenAIError as e:
            logger.warning(f"OpenAI request failed, falling back to built-in parsing: {e}")
        except (ValueError, KeyError, TypeError, IndexError, AttributeError) as e:
            logger.warning(f"Invalid OpenAI answer, falling back to built-in parsing: {e}")
        return []


def parse_model_output(content: str) -> List[UsageRecord]:
    """Convert the model's JSON answer into usage records.

    Raises:
        InvalidModelOutput: If the answer is not the expected structure
    """
    text = content.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidModelOutput(f"Answer is not JSON: {e}")

    if not isinstance(data, dict) or not isinstance(data.get("skus"), list):
        raise InvalidModelOutput("Answer is missing the 'skus' list")

    records = []
    for item in data["skus"]:
        if not isinstance(item, dict):
            raise InvalidModelOutput("SKU entries must be objects")
        sku_id = item.get("skuId")
        if not isinstance(sku_id, str) or not sku_id.strip():
            raise InvalidModelOutput("SKU entry without skuId")

        cost = float(item.get("cost") or 0)
        if not math.isfinite(cost) or cost <= 0:
            continue
        usage = float(item.get("estimatedUsage") or 0)
        if not math.isfinite(usage):
            usage = 0.0

        records.append(UsageRecord(
            sku_id=sku_id.strip(),
            service_code=str(item.get("service") or sku_id.split("-")[0]),
            usage_quantity=max(0.0, usage),
            cost=cost,
            region=str(item.get("region") or "us-east-1"),
            unit=str(item.get("unit") or "units"),
            usage_estimated=True
        ))
    return records
