"""
Invoice pooling service.

Connects extraction, the invoice repository and the pool allocator. The
service keeps no invoice state of its own: every statistic is computed from
a fresh ``repository.list()``.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from .identifiers import IdFactory, uuid_ids
from .pool import CustomerSavings, PoolAllocator, PoolSnapshot, SkuPoolSummary
from aws_cost_pool.extraction import PositionedFragment, UsageRecordExtractor
from aws_cost_pool.storage.models import Invoice
from aws_cost_pool.storage.repository import InvoiceRepository

logger = logging.getLogger(__name__)


class InvoiceNotFound(KeyError):
    """Raised when an invoice id is not in the repository."""
    def __init__(self, invoice_id: str):
        super().__init__(invoice_id)
        self.invoice_id = invoice_id

    def __str__(self) -> str:
        return f"Invoice not found: {self.invoice_id}"


class PoolingService:
    """Submits invoices and answers pool and per-customer savings queries."""

    def __init__(
        self,
        repository: InvoiceRepository,
        extractor: Optional[UsageRecordExtractor] = None,
        allocator: Optional[PoolAllocator] = None,
        id_factory: Optional[IdFactory] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.repository = repository
        self.extractor = extractor or UsageRecordExtractor()
        self.allocator = allocator or PoolAllocator()
        self.id_factory = id_factory or uuid_ids()
        self.clock = clock or datetime.now

    def submit_invoice(
        self,
        customer_name: str,
        raw_text: str,
        source_file_name: str = "",
        fragments: Optional[Sequence[PositionedFragment]] = None
    ) -> Invoice:
        """Extract usage records from invoice text and add the invoice to the pool.

        Args:
            customer_name: Customer the invoice belongs to (required)
            raw_text: Text content of the invoice
            source_file_name: Name of the uploaded file
            fragments: Optional positioned text fragments of the same document

        Returns:
            The stored invoice

        Raises:
            ValueError: If customer_name is missing/empty
            ParseFailure: If no usage record could be extracted
        """
        if not customer_name or not customer_name.strip():
            raise ValueError("Customer name is required.")

        records = self.extractor.extract(raw_text, fragments)
        invoice = Invoice(
            id=self.id_factory(),
            customer_name=customer_name.strip(),
            records=records,
            uploaded_at=self.clock(),
            source_file_name=source_file_name
        )
        self.repository.append(invoice)

        logger.info(
            f"Stored invoice {invoice.id} for {invoice.customer_name}: "
            f"{len(invoice.records)} SKUs, total ${invoice.total_cost:.2f}"
        )
        return invoice

    def list_invoices(self) -> List[Invoice]:
        return self.repository.list()

    def remove_invoice(self, invoice_id: str) -> bool:
        removed = self.repository.remove(invoice_id)
        if removed:
            logger.info(f"Removed invoice {invoice_id} from the pool")
        return removed

    def pool_stats(self) -> PoolSnapshot:
        return self.allocator.pool_stats(self.repository.list())

    def customer_savings(self, invoice_id: str) -> CustomerSavings:
        """Savings of one stored invoice against the current pool.

        Raises:
            InvoiceNotFound: If no invoice has this id
        """
        invoices = self.repository.list()
        for invoice in invoices:
            if invoice.id == invoice_id:
                return self.allocator.customer_savings(invoice, invoices)
        raise InvoiceNotFound(invoice_id)

    def sku_breakdown(self) -> List[SkuPoolSummary]:
        return self.allocator.sku_breakdown(self.repository.list())
