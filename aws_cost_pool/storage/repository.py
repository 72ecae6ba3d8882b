"""
Repository pattern for invoice access.

The pooling core depends only on the ``InvoiceRepository`` interface; the
concrete stores here are the in-memory one used in tests and the SQLite one
used by the CLI.
"""

import logging
from datetime import datetime
from typing import List, Optional, Protocol

from .db import get_connection
from .models import Invoice, UsageRecord

logger = logging.getLogger(__name__)


class InvoiceRepository(Protocol):
    """Storage interface for the invoice collection."""

    def list(self) -> List[Invoice]:
        """Return every stored invoice in insertion order."""
        ...

    def append(self, invoice: Invoice) -> None:
        """Store a new invoice."""
        ...

    def remove(self, invoice_id: str) -> bool:
        """Delete an invoice by id. Returns False if it did not exist."""
        ...

    def get(self, invoice_id: str) -> Optional[Invoice]:
        """Return the invoice with the given id, or None."""
        ...


class InMemoryInvoiceRepository:
    """List-backed repository. Not shared between instances."""

    def __init__(self, invoices: Optional[List[Invoice]] = None):
        self._invoices: List[Invoice] = list(invoices or [])

    def list(self) -> List[Invoice]:
        return list(self._invoices)

    def append(self, invoice: Invoice) -> None:
        if self.get(invoice.id) is not None:
            raise ValueError(f"Duplicate invoice id: {invoice.id}")
        self._invoices.append(invoice)

    def remove(self, invoice_id: str) -> bool:
        initial_length = len(self._invoices)
        self._invoices = [inv for inv in self._invoices if inv.id != invoice_id]
        return len(self._invoices) < initial_length

    def get(self, invoice_id: str) -> Optional[Invoice]:
        for invoice in self._invoices:
            if invoice.id == invoice_id:
                return invoice
        return None


class SqliteInvoiceRepository:
    """Repository for invoices persisted in a SQLite database.

    Each call opens and closes its own connection, so the repository holds
    no state between calls besides the database path.
    """

    def __init__(self, db_path: str = "cost_pool.db"):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def initialize_schema(self) -> None:
        """Create the invoice and usage_record tables if they don't exist."""
        conn = get_connection(self.db_path)
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS invoice (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    customer_name TEXT NOT NULL,
                    uploaded_at TEXT NOT NULL,
                    source_file_name TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS usage_record (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    invoice_id TEXT NOT NULL
                        REFERENCES invoice(id) ON DELETE CASCADE,
                    position INTEGER NOT NULL,
                    sku_id TEXT NOT NULL,
                    service_code TEXT NOT NULL,
                    usage_quantity REAL NOT NULL,
                    cost REAL NOT NULL,
                    region TEXT NOT NULL,
                    unit TEXT NOT NULL,
                    usage_estimated INTEGER NOT NULL DEFAULT 0
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def append(self, invoice: Invoice) -> None:
        """Insert an invoice and its records atomically.

        Args:
            invoice: The invoice to store

        Raises:
            sqlite3.IntegrityError: If an invoice with the same id exists
        """
        conn = get_connection(self.db_path)
        try:
            conn.execute("BEGIN TRANSACTION")
            conn.execute("""
                INSERT INTO invoice (id, customer_name, uploaded_at, source_file_name)
                VALUES (?, ?, ?, ?)
            """, (
                invoice.id,
                invoice.customer_name,
                invoice.uploaded_at.isoformat(),
                invoice.source_file_name
            ))
            for position, record in enumerate(invoice.records):
                conn.execute("""
                    INSERT INTO usage_record
                    (invoice_id, position, sku_id, service_code, usage_quantity,
                     cost, region, unit, usage_estimated)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    invoice.id,
                    position,
                    record.sku_id,
                    record.service_code,
                    record.usage_quantity,
                    record.cost,
                    record.region,
                    record.unit,
                    int(record.usage_estimated)
                ))
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        logger.debug(f"Stored invoice {invoice.id} with {len(invoice.records)} records")

    def list(self) -> List[Invoice]:
        """Return all invoices ordered by insertion, records in extraction order."""
        conn = get_connection(self.db_path)
        try:
            invoice_rows = conn.execute("""
                SELECT id, customer_name, uploaded_at, source_file_name
                FROM invoice ORDER BY seq
            """).fetchall()
            record_rows = conn.execute("""
                SELECT invoice_id, sku_id, service_code, usage_quantity,
                       cost, region, unit, usage_estimated
                FROM usage_record ORDER BY invoice_id, position
            """).fetchall()
        finally:
            conn.close()

        records_by_invoice = {}
        for row in record_rows:
            records_by_invoice.setdefault(row[0], []).append(_record_from_row(row[1:]))

        return [
            Invoice(
                id=row[0],
                customer_name=row[1],
                records=records_by_invoice.get(row[0], []),
                uploaded_at=datetime.fromisoformat(row[2]),
                source_file_name=row[3]
            )
            for row in invoice_rows
        ]

    def get(self, invoice_id: str) -> Optional[Invoice]:
        """Return one invoice by id, or None if it is not stored."""
        conn = get_connection(self.db_path)
        try:
            row = conn.execute("""
                SELECT id, customer_name, uploaded_at, source_file_name
                FROM invoice WHERE id = ?
            """, (invoice_id,)).fetchone()
            if row is None:
                return None
            record_rows = conn.execute("""
                SELECT sku_id, service_code, usage_quantity, cost, region,
                       unit, usage_estimated
                FROM usage_record WHERE invoice_id = ? ORDER BY position
            """, (invoice_id,)).fetchall()
        finally:
            conn.close()

        return Invoice(
            id=row[0],
            customer_name=row[1],
            records=[_record_from_row(r) for r in record_rows],
            uploaded_at=datetime.fromisoformat(row[2]),
            source_file_name=row[3]
        )

    def remove(self, invoice_id: str) -> bool:
        """Delete an invoice and, by cascade, its usage records."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("DELETE FROM invoice WHERE id = ?", (invoice_id,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()


def _record_from_row(row) -> UsageRecord:
    return UsageRecord(
        sku_id=row[0],
        service_code=row[1],
        usage_quantity=row[2],
        cost=row[3],
        region=row[4],
        unit=row[5],
        usage_estimated=bool(row[6])
    )


def get_repository(db_path: str = "cost_pool.db") -> SqliteInvoiceRepository:
    """Get a SQLite repository for ``db_path``.

    Args:
        db_path: Path to SQLite database file

    Returns:
        An instance of SqliteInvoiceRepository
    """
    return SqliteInvoiceRepository(db_path)
