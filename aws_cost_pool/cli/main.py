"""
CLI interface for AWS Cost Pool.

Provides command-line access to invoice pooling and savings estimates.
"""

import json
import logging
import sqlite3
import sys
from pathlib import Path
from typing import List, Optional

import typer
import yaml
from openai import OpenAIError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from aws_cost_pool.config.loader import load_pricing_catalog
from aws_cost_pool.core.catalog import DEFAULT_CATALOG, PricingCatalog
from aws_cost_pool.core.identifiers import uuid_ids
from aws_cost_pool.core.pool import PoolAllocator
from aws_cost_pool.core.service import InvoiceNotFound, PoolingService
from aws_cost_pool.core.tiered_cost import TieredCostCalculator
from aws_cost_pool.demo.seed_demo_data import seed_demo_invoices
from aws_cost_pool.extraction import ParseFailure, PositionedFragment, UsageRecordExtractor
from aws_cost_pool.sdk.openai_parser import OpenAIInvoiceParser
from aws_cost_pool.storage.repository import get_repository

app = typer.Typer()
console = Console()

EXIT_CODE_OK = 0
EXIT_CODE_FAIL = 1

# Bad --db, --pricing or input files; reported without a traceback
SETUP_ERRORS = (OSError, ValueError, yaml.YAMLError, sqlite3.Error)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    db: str = typer.Option("cost_pool.db", "--db", help="Path to the invoice database"),
    pricing: Optional[Path] = typer.Option(
        None,
        "--pricing",
        "-p",
        help="YAML pricing catalog (defaults to the built-in tables)"
    ),
    llm_model: Optional[str] = typer.Option(
        None,
        "--llm-model",
        help="OpenAI model used to parse invoices before the built-in strategies"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")
):
    """AWS Cost Pool CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    ctx.obj = {"db": db, "pricing": pricing, "llm_model": llm_model}
    if ctx.invoked_subcommand is None:
        console.print("AWS Cost Pool - Use --help to see available commands")


def _load_catalog(ctx: typer.Context) -> PricingCatalog:
    """Catalog from --pricing, or the built-in tables."""
    options = ctx.obj or {}
    if options.get("pricing") is not None:
        return load_pricing_catalog(str(options["pricing"]))
    return DEFAULT_CATALOG


def _build_service(ctx: typer.Context) -> PoolingService:
    """Wire repository, catalog, extractor and allocator from CLI options."""
    options = ctx.obj or {}
    catalog = _load_catalog(ctx)

    primary = None
    if options.get("llm_model"):
        try:
            primary = OpenAIInvoiceParser(options["llm_model"])
        except OpenAIError as e:
            console.print(f"[yellow]OpenAI unavailable, using built-in parsing:[/] {escape(str(e))}")

    repository = get_repository(options.get("db", "cost_pool.db"))
    repository.initialize_schema()
    return PoolingService(
        repository=repository,
        extractor=UsageRecordExtractor(primary=primary, catalog=catalog),
        allocator=PoolAllocator(TieredCostCalculator(catalog)),
        id_factory=uuid_ids()
    )


def _fail(e: Exception):
    console.print(f"[red]Error:[/] {escape(str(e))}")
    sys.exit(EXIT_CODE_FAIL)


def _load_fragments(path: Path) -> List[PositionedFragment]:
    """Read positioned fragments from a JSON list of {text, x, y, pageIndex}."""
    with open(path, 'r', encoding='utf-8') as f:
        raw = json.load(f)
    if not isinstance(raw, list):
        raise ValueError("Fragments file must contain a JSON list")
    return [
        PositionedFragment(
            text=str(item["text"]),
            x=float(item["x"]),
            y=float(item["y"]),
            page_index=int(item.get("pageIndex", item.get("page_index", 0)))
        )
        for item in raw
    ]


def _format_currency(amount: float) -> str:
    """Format currency with proper symbols and formatting."""
    return f"${abs(amount):,.2f}"


def _format_percent(value: float) -> str:
    return f"{value:,.1f}%"


@app.command()
def status(ctx: typer.Context):
    """Show the database, pricing catalog and parser configuration."""
    options = ctx.obj or {}
    try:
        catalog = _load_catalog(ctx)
        repository = get_repository(options["db"])
        repository.initialize_schema()
        invoice_count = len(repository.list())
    except SETUP_ERRORS as e:
        _fail(e)

    console.print("[green]✓[/] AWS Cost Pool is initialized")
    console.print(f"Database: {escape(options['db'])}")
    console.print(f"Invoices: {invoice_count}")
    console.print(f"Catalog SKUs: {len(catalog.sku_ids())} (default {catalog.default_sku})")
    llm_model = options.get("llm_model")
    console.print(f"LLM parser: {escape(llm_model) if llm_model else 'disabled'}")


@app.command()
def init(ctx: typer.Context):
    """Initialize the invoice database."""
    try:
        get_repository(ctx.obj["db"]).initialize_schema()
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_OK)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def upload(
    ctx: typer.Context,
    invoice_file: Path = typer.Argument(..., help="Invoice text file (UTF-8)"),
    customer: str = typer.Option(..., "--customer", "-c", help="Customer name"),
    fragments: Optional[Path] = typer.Option(
        None,
        "--fragments",
        "-f",
        help="JSON file with positioned text fragments of the invoice"
    )
):
    """Extract usage records from an invoice and add it to the pool."""
    try:
        service = _build_service(ctx)
        text = invoice_file.read_text(encoding='utf-8', errors='replace')
        positioned = _load_fragments(fragments) if fragments is not None else None
        invoice = service.submit_invoice(customer, text, invoice_file.name, positioned)
    except ParseFailure as e:
        console.print(f"[red]Failed to parse invoice:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)
    except SETUP_ERRORS + (KeyError, TypeError) as e:
        _fail(e)

    console.print(f"[green]✓[/] Stored invoice {invoice.id}")
    console.print(f"Customer: {escape(invoice.customer_name)}")
    console.print(f"SKUs found: {len(invoice.records)}")
    console.print(f"Total cost: {_format_currency(invoice.total_cost)}")
    for record in invoice.records:
        estimated = " (estimated)" if record.usage_estimated else ""
        console.print(
            f"  {record.sku_id}: {record.usage_quantity:,.2f} {record.unit}{estimated} "
            f"{_format_currency(record.cost)}"
        )


@app.command()
def invoices(ctx: typer.Context):
    """List the invoices in the pool."""
    try:
        stored = _build_service(ctx).list_invoices()
    except SETUP_ERRORS as e:
        _fail(e)
    if not stored:
        console.print("[dim]No invoices in the pool.[/]")
        return

    table = Table(title="Invoices")
    table.add_column("ID")
    table.add_column("Customer")
    table.add_column("SKUs", justify="right")
    table.add_column("Total", justify="right")
    for invoice in stored:
        table.add_row(
            invoice.id,
            escape(invoice.customer_name),
            str(len(invoice.records)),
            _format_currency(invoice.total_cost)
        )
    console.print(table)


@app.command()
def remove(ctx: typer.Context, invoice_id: str = typer.Argument(..., help="Invoice ID")):
    """Remove an invoice from the pool."""
    try:
        removed = _build_service(ctx).remove_invoice(invoice_id)
    except SETUP_ERRORS as e:
        _fail(e)
    if not removed:
        console.print(f"[red]Invoice not found:[/] {escape(invoice_id)}")
        sys.exit(EXIT_CODE_FAIL)
    console.print("[green]✓[/] Invoice removed successfully")


@app.command()
def stats(ctx: typer.Context):
    """Show pool-wide standalone cost, pooled cost and savings."""
    try:
        snapshot = _build_service(ctx).pool_stats()
    except SETUP_ERRORS as e:
        _fail(e)

    console.print("\n[bold]Pool Statistics[/bold]")
    console.print("-" * 40)
    console.print(f"Customers: {snapshot.total_customers}")
    console.print(f"Standalone cost: {_format_currency(snapshot.standalone_cost_total)}")
    console.print(f"Pooled cost: {_format_currency(snapshot.pooled_cost_total)}")
    console.print(f"Estimated savings: {_format_currency(snapshot.estimated_savings)}")
    console.print(f"Savings rate: {_format_percent(snapshot.savings_percentage)}")
    for sku_id, usage in sorted(snapshot.usage_by_sku.items()):
        console.print(f"  {sku_id}: {usage:,.2f}")


@app.command()
def savings(ctx: typer.Context, invoice_id: str = typer.Argument(..., help="Invoice ID")):
    """Show what one customer saves by joining the pool."""
    try:
        result = _build_service(ctx).customer_savings(invoice_id)
    except InvoiceNotFound as e:
        console.print(f"[red]{escape(str(e))}[/]")
        sys.exit(EXIT_CODE_FAIL)
    except SETUP_ERRORS as e:
        _fail(e)

    console.print(f"Standalone: {_format_currency(result.standalone)}")
    console.print(f"Pooled: {_format_currency(result.pooled)}")
    console.print(f"Savings: {_format_currency(result.savings)} ({_format_percent(result.percentage)})")


@app.command()
def skus(ctx: typer.Context):
    """Show usage, standalone and pooled cost per SKU."""
    try:
        summaries = _build_service(ctx).sku_breakdown()
    except SETUP_ERRORS as e:
        _fail(e)
    if not summaries:
        console.print("[dim]No usage in the pool.[/]")
        return

    table = Table(title="SKU Breakdown")
    table.add_column("SKU")
    table.add_column("Customers", justify="right")
    table.add_column("Usage", justify="right")
    table.add_column("Standalone", justify="right")
    table.add_column("Pooled", justify="right")
    for summary in summaries:
        table.add_row(
            summary.sku_id,
            str(summary.customers),
            f"{summary.total_usage:,.2f}",
            _format_currency(summary.standalone_cost),
            _format_currency(summary.pooled_cost)
        )
    console.print(table)


@app.command()
def quote(
    ctx: typer.Context,
    sku_id: str = typer.Argument(..., help="SKU to price"),
    usage: float = typer.Argument(..., help="Total usage")
):
    """Price a usage volume against a SKU's tiers."""
    try:
        catalog = _load_catalog(ctx)
    except SETUP_ERRORS as e:
        _fail(e)
    calculator = TieredCostCalculator(catalog)

    if not catalog.has_sku(sku_id):
        console.print(f"[yellow]Unknown SKU, priced as {catalog.default_sku}[/]")
    for charge in calculator.breakdown(sku_id, usage):
        console.print(
            f"  {charge.tier.min_usage:,.0f}-{charge.tier.max_usage:,.0f}: "
            f"{charge.usage:,.2f} @ ${charge.tier.unit_price} = {_format_currency(charge.cost)}"
        )
    console.print(f"Total: {_format_currency(calculator.cost(sku_id, usage))}")


@app.command()
def demo(ctx: typer.Context):
    """Load three sample invoices into the pool."""
    try:
        seeded = seed_demo_invoices(_build_service(ctx))
    except SETUP_ERRORS as e:
        _fail(e)
    for invoice in seeded:
        console.print(f"[green]✓[/] {escape(invoice.customer_name)}: {_format_currency(invoice.total_cost)}")
    console.print("Demo invoices inserted")


if __name__ == "__main__":
    app()
