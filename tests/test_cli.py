"""
Tests for the CLI interface.
"""
import json
import os
import tempfile

import pytest
from typer.testing import CliRunner

from aws_cost_pool.cli.main import app, EXIT_CODE_FAIL, EXIT_CODE_OK
from aws_cost_pool.storage.repository import SqliteInvoiceRepository

runner = CliRunner()

INVOICE_TEXT = """AWS Invoice
Amazon Elastic Compute Cloud  us-east-1  1,000 Hrs  $50.00
Amazon Simple Storage Service  $23.00
"""


@pytest.fixture
def workspace():
    """Temporary directory holding the database and input files."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def db_path(workspace):
    return os.path.join(workspace, "pool.db")


def write_file(directory, name, content):
    path = os.path.join(directory, name)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(content)
    return path


class TestCLI:
    """Test CLI commands."""

    def test_init(self, db_path):
        result = runner.invoke(app, ["--db", db_path, "init"])
        assert result.exit_code == EXIT_CODE_OK
        assert "Database initialized successfully" in result.output
        assert os.path.exists(db_path)

    def test_upload(self, workspace, db_path):
        invoice_file = write_file(workspace, "invoice.txt", INVOICE_TEXT)

        result = runner.invoke(app, ["--db", db_path, "upload", invoice_file, "--customer", "Initech"])

        assert result.exit_code == EXIT_CODE_OK
        assert "Stored invoice" in result.output
        assert "SKUs found: 2" in result.output
        assert "Total cost: $73.00" in result.output

        stored = SqliteInvoiceRepository(db_path).list()
        assert len(stored) == 1
        assert stored[0].customer_name == "Initech"
        assert stored[0].source_file_name == "invoice.txt"

    def test_upload_with_fragments(self, workspace, db_path):
        invoice_file = write_file(workspace, "invoice.txt", "")
        fragments_file = write_file(workspace, "fragments.json", json.dumps([
            {"text": "Amazon CloudFront", "x": 10, "y": 100, "pageIndex": 0},
            {"text": "$212.50", "x": 300, "y": 101, "pageIndex": 0},
        ]))

        result = runner.invoke(app, [
            "--db", db_path, "upload", invoice_file, "-c", "Initech", "-f", fragments_file
        ])

        assert result.exit_code == EXIT_CODE_OK
        assert "CloudFront-DataTransfer-us-east-1" in result.output

    def test_upload_unparseable_invoice(self, workspace, db_path):
        invoice_file = write_file(workspace, "invoice.txt", "Thank you for your business")

        result = runner.invoke(app, ["--db", db_path, "upload", invoice_file, "-c", "Initech"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Failed to parse invoice" in result.output
        assert SqliteInvoiceRepository(db_path).list() == []

    def test_upload_missing_file(self, workspace, db_path):
        missing = os.path.join(workspace, "missing.txt")
        result = runner.invoke(app, ["--db", db_path, "upload", missing, "-c", "Initech"])
        assert result.exit_code == EXIT_CODE_FAIL

    def test_invoices_empty(self, db_path):
        result = runner.invoke(app, ["--db", db_path, "invoices"])
        assert result.exit_code == EXIT_CODE_OK
        assert "No invoices in the pool." in result.output

    def test_invoices_lists_customers(self, workspace, db_path):
        invoice_file = write_file(workspace, "invoice.txt", INVOICE_TEXT)
        runner.invoke(app, ["--db", db_path, "upload", invoice_file, "-c", "Initech"])

        result = runner.invoke(app, ["--db", db_path, "invoices"])

        assert result.exit_code == EXIT_CODE_OK
        assert "Initech" in result.output

    def test_stats_and_savings(self, workspace, db_path):
        invoice_file = write_file(workspace, "invoice.txt", INVOICE_TEXT)
        runner.invoke(app, ["--db", db_path, "upload", invoice_file, "-c", "Initech"])
        invoice_id = SqliteInvoiceRepository(db_path).list()[0].id

        result = runner.invoke(app, ["--db", db_path, "stats"])
        assert result.exit_code == EXIT_CODE_OK
        assert "Pool Statistics" in result.output
        assert "Customers: 1" in result.output
        assert "Standalone cost: $73.00" in result.output

        result = runner.invoke(app, ["--db", db_path, "savings", invoice_id])
        assert result.exit_code == EXIT_CODE_OK
        assert "Standalone: $73.00" in result.output

    def test_savings_unknown_invoice(self, db_path):
        result = runner.invoke(app, ["--db", db_path, "savings", "invoice-missing"])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Invoice not found" in result.output

    def test_remove(self, workspace, db_path):
        invoice_file = write_file(workspace, "invoice.txt", INVOICE_TEXT)
        runner.invoke(app, ["--db", db_path, "upload", invoice_file, "-c", "Initech"])
        invoice_id = SqliteInvoiceRepository(db_path).list()[0].id

        result = runner.invoke(app, ["--db", db_path, "remove", invoice_id])
        assert result.exit_code == EXIT_CODE_OK
        assert "Invoice removed successfully" in result.output

        result = runner.invoke(app, ["--db", db_path, "stats"])
        assert "Customers: 0" in result.output

    def test_remove_unknown_invoice(self, db_path):
        result = runner.invoke(app, ["--db", db_path, "remove", "invoice-missing"])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Invoice not found" in result.output

    def test_demo_then_skus(self, db_path):
        result = runner.invoke(app, ["--db", db_path, "demo"])
        assert result.exit_code == EXIT_CODE_OK
        assert "Demo invoices inserted" in result.output

        result = runner.invoke(app, ["--db", db_path, "stats"])
        assert "Customers: 3" in result.output

        result = runner.invoke(app, ["--db", db_path, "skus"])
        assert result.exit_code == EXIT_CODE_OK
        assert "SKU Breakdown" in result.output

    def test_quote(self):
        result = runner.invoke(app, ["quote", "EC2", "1000"])
        assert result.exit_code == EXIT_CODE_OK
        assert "Total: $45.22" in result.output

    def test_quote_unknown_sku(self):
        result = runner.invoke(app, ["quote", "Lambda", "1000"])
        assert result.exit_code == EXIT_CODE_OK
        assert "Unknown SKU, priced as EC2" in result.output
        assert "Total: $45.22" in result.output

    def test_quote_with_pricing_file(self, workspace):
        pricing_file = write_file(workspace, "pricing.yaml", """
default_sku: Flat
skus:
  Flat:
    - {min_usage: 0, unit_price: 0.5}
""")
        result = runner.invoke(app, ["--pricing", pricing_file, "quote", "Flat", "10"])
        assert result.exit_code == EXIT_CODE_OK
        assert "Total: $5.00" in result.output

    @pytest.mark.parametrize("command", [
        ["stats"],
        ["skus"],
        ["invoices"],
        ["demo"],
        ["savings", "invoice-1"],
        ["remove", "invoice-1"],
        ["quote", "EC2", "10"],
        ["status"],
    ])
    def test_invalid_pricing_file_reported(self, workspace, db_path, command):
        pricing_file = write_file(workspace, "pricing.yaml", "skus: {}\ncurrency: EUR\n")

        result = runner.invoke(app, ["--db", db_path, "--pricing", pricing_file] + command)

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Error:" in result.output
        assert "Unknown catalog keys" in result.output
        assert not isinstance(result.exception, ValueError)

    def test_malformed_pricing_yaml_reported(self, workspace, db_path):
        pricing_file = write_file(workspace, "pricing.yaml", "skus: [unclosed\n")

        result = runner.invoke(app, ["--db", db_path, "--pricing", pricing_file, "stats"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Error:" in result.output

    def test_missing_pricing_file_reported(self, workspace, db_path):
        missing = os.path.join(workspace, "missing.yaml")

        result = runner.invoke(app, ["--db", db_path, "--pricing", missing, "quote", "EC2", "10"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Pricing catalog file not found" in result.output

    def test_status(self, db_path):
        result = runner.invoke(app, ["--db", db_path, "status"])

        assert result.exit_code == EXIT_CODE_OK
        assert "Invoices: 0" in result.output
        assert "Catalog SKUs: " in result.output
        assert "(default EC2)" in result.output
        assert "LLM parser: disabled" in result.output

    def test_status_after_demo(self, workspace, db_path):
        pricing_file = write_file(workspace, "pricing.yaml", """
default_sku: Flat
skus:
  Flat:
    - {min_usage: 0, unit_price: 0.5}
""")
        runner.invoke(app, ["--db", db_path, "demo"])

        result = runner.invoke(app, [
            "--db", db_path, "--pricing", pricing_file, "--llm-model", "gpt-4o-mini", "status"
        ])

        assert result.exit_code == EXIT_CODE_OK
        assert "Invoices: 3" in result.output
        assert "Catalog SKUs: 1 (default Flat)" in result.output
        assert "LLM parser: gpt-4o-mini" in result.output

    def test_nested_db_path(self, workspace):
        db_path = os.path.join(workspace, "reports", "2024", "pool.db")

        result = runner.invoke(app, ["--db", db_path, "init"])

        assert result.exit_code == EXIT_CODE_OK
        assert os.path.exists(db_path)
