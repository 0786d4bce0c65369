from __future__ import annotations

from typing import Dict, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from merchant_insights.accessor import InsightsReader
from merchant_insights.errors import AnalyticsNotReadyError
from merchant_insights.pipeline import PipelineResult


def _import_table(result: PipelineResult) -> Table:
    table = Table(title="Import", box=box.ROUNDED, show_header=False)
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", justify="right", style="magenta")

    summary = result.import_summary
    if summary is None:
        table.add_row("Status", f"[red]failed[/red]: {result.error}")
        return table

    table.add_row("Files", f"{len(summary.files):,}")
    table.add_row("Imported", f"{summary.total_imported:,}")
    table.add_row("Skipped", f"{summary.total_skipped:,}")
    table.add_row("Duration (s)", f"{summary.duration_seconds:.1f}")
    if summary.restarted:
        table.add_row("Mode", "[yellow]restart (existing data kept)[/yellow]")
    return table


def _validation_table(validation: Dict[str, int]) -> Table:
    table = Table(title="Validation", box=box.ROUNDED)
    table.add_column("Counter", style="cyan", no_wrap=True)
    table.add_column("Rows", justify="right", style="yellow")
    for name, count in validation.items():
        table.add_row(name, f"{count:,}")
    return table


def _mapping_table(title: str, key_label: str, value_label: str, values: Dict[str, int]) -> Table:
    table = Table(title=title, box=box.ROUNDED)
    table.add_column(key_label, style="cyan", no_wrap=True)
    table.add_column(value_label, justify="right", style="green")
    for key, value in values.items():
        table.add_row(key, f"{value:,}")
    return table


def _analytics_tables(reader: InsightsReader) -> list[Table]:
    top = reader.get_top_merchant()
    top_table = Table(title="Top merchant", box=box.ROUNDED)
    top_table.add_column("Merchant", style="cyan")
    top_table.add_column("Total volume", justify="right", style="bold green")
    if top is None:
        top_table.add_row("-", "-")
    else:
        top_table.add_row(top["merchant_id"], f"{top['total_volume']:,.2f}")

    rates = Table(title="Failure rates", box=box.ROUNDED, caption="FAILED / (SUCCESS + FAILED)")
    rates.add_column("Product", style="cyan")
    rates.add_column("Failure %", justify="right", style="red")
    for entry in reader.get_failure_rates():
        rates.add_row(entry["product"], f"{entry['failure_rate']:.1f}")

    return [
        top_table,
        _mapping_table(
            "Monthly active merchants", "Month", "Merchants", reader.get_monthly_active_merchants()
        ),
        _mapping_table("Product adoption", "Product", "Merchants", reader.get_product_adoption()),
        _mapping_table("KYC funnel", "Stage", "Merchants", dict(reader.get_kyc_funnel())),
        rates,
    ]


def print_report(
    result: PipelineResult, reader: InsightsReader, console: Optional[Console] = None
) -> None:
    """
    Render a pipeline run as rich tables.

    Analytics tables are only printed once the cache is ready.
    """
    console = console or Console()
    console.print(_import_table(result))
    if result.validation:
        console.print(_validation_table(result.validation))

    try:
        tables = _analytics_tables(reader)
    except AnalyticsNotReadyError as exc:
        console.print(f"[yellow]{exc}[/yellow]")
        return

    for table in tables:
        console.print(table)
    if result.precompute is not None and result.precompute.failed:
        console.print(
            "[yellow]Failed projections (showing last known values): "
            f"{', '.join(result.precompute.failed)}[/yellow]"
        )
