# aws_cost_pool/demo/seed_demo_data.py

from typing import List

from aws_cost_pool.core.service import PoolingService
from aws_cost_pool.storage.models import Invoice

DEMO_INVOICES = [
    (
        "Acme Analytics",
        "acme-2024-05.pdf",
        """AWS Invoice - Acme Analytics
        Amazon Elastic Compute Cloud  us-east-1  5,200 Hrs  $216.32
        Amazon Simple Storage Service  1,800 GB-Mo  $41.40
        AWS Data Transfer  $18.00
        Total: $275.72
        """,
    ),
    (
        "Brightside Media",
        "brightside-2024-05.pdf",
        """AWS Invoice - Brightside Media
        Amazon Elastic Compute Cloud  us-east-1  7,900 Hrs  $328.64
        Amazon CloudFront  $212.50
        Amazon Simple Email Service  $6.20
        Total: $547.34
        """,
    ),
    (
        "Corvid Labs",
        "corvid-2024-05.pdf",
        """AWS Invoice - Corvid Labs
        Amazon Elastic Compute Cloud  us-east-1  3,100 Hrs  $128.96
        Amazon RDS Service  $45.90
        Amazon Simple Notification Service  $1.25
        Total: $176.11
        """,
    ),
]


def seed_demo_invoices(service: PoolingService) -> List[Invoice]:
    """Submit the demo invoices through ``service`` and return them."""
    return [
        service.submit_invoice(customer_name, text, source_file_name)
        for customer_name, source_file_name, text in DEMO_INVOICES
    ]
