"""
Synthetic day-file generator for local Merchant Insights runs.

Writes `activities_YYYYMMDD.csv` files with deterministic pseudo-random rows.
A configurable share of rows is deliberately dirty (bad event ids, unknown
statuses, negative or comma-grouped amounts, blank timestamps, duplicates) so
the validator has something to do.
"""

from __future__ import annotations

import csv
import random
import sys
import time
import uuid
from datetime import UTC, date, datetime, timedelta
from pathlib import Path
from typing import List

import typer

from merchant_insights.domain.models import Channel, MerchantTier, Product, Status
from merchant_insights.infrastructure.schema import ACTIVITY_COLUMNS

app = typer.Typer(help="Generate synthetic merchant activity day files.")

EVENT_TYPES = {
    Product.POS: ["CARD_TRANSACTION", "REFUND"],
    Product.AIRTIME: ["AIRTIME_PURCHASE"],
    Product.BILLS: ["BILL_PAYMENT"],
    Product.CARD_PAYMENT: ["CARD_PAYMENT"],
    Product.SAVINGS: ["DEPOSIT", "WITHDRAWAL"],
    Product.MONIEBOOK: ["INVOICE_CREATED", "SALE_RECORDED"],
    Product.KYC: ["DOCUMENT_SUBMITTED", "VERIFICATION_COMPLETED", "TIER_UPGRADE"],
}
REGIONS = ["Lagos", "Abuja", "Kano", "Ibadan", "Port Harcourt"]
STATUS_WEIGHTS = [(Status.SUCCESS, 80), (Status.FAILED, 15), (Status.PENDING, 5)]


def _clean_row(rng: random.Random, day: date, merchants: int) -> List[str]:
    product = rng.choice(list(Product))
    status = rng.choices(
        [s for s, _ in STATUS_WEIGHTS], weights=[w for _, w in STATUS_WEIGHTS]
    )[0]
    moment = datetime(day.year, day.month, day.day, tzinfo=UTC) + timedelta(
        seconds=rng.randint(0, 86_399)
    )
    amount = f"{rng.uniform(0, 250_000):.2f}" if product is not Product.KYC else "0.00"
    return [
        str(uuid.UUID(int=rng.getrandbits(128), version=4)),
        f"MRC-{rng.randint(1, merchants):06d}",
        moment.strftime("%Y-%m-%dT%H:%M:%S"),
        product.value,
        rng.choice(EVENT_TYPES[product]),
        amount,
        status.value,
        rng.choice(list(Channel)).value,
        rng.choice(REGIONS),
        rng.choice(list(MerchantTier)).value,
    ]


def _dirty(rng: random.Random, row: List[str], previous: List[str] | None) -> List[str]:
    kind = rng.randrange(6)
    row = list(row)
    if kind == 0:
        row[0] = "not-a-uuid"
    elif kind == 1:
        row[6] = "UNKNOWN"
    elif kind == 2:
        row[5] = f"-{row[5]}"
    elif kind == 3:
        row[5] = f"{float(row[5]) + 1000:,.2f}"
    elif kind == 4:
        row[2] = ""
    elif previous is not None:
        return list(previous)
    return row


def _write_day(
    path: Path, day: date, rows: int, merchants: int, dirty_ratio: float, rng: random.Random
) -> None:
    previous: List[str] | None = None
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(ACTIVITY_COLUMNS)
        for _ in range(rows):
            row = _clean_row(rng, day, merchants)
            if rng.random() < dirty_ratio:
                row = _dirty(rng, row, previous)
            writer.writerow(row)
            previous = row


@app.command()
def main(
    days: int = typer.Option(3, "--days", "-d", help="Number of day files to write."),
    rows: int = typer.Option(10_000, "--rows", "-r", help="Rows per day file."),
    merchants: int = typer.Option(500, "--merchants", "-m", help="Distinct merchant ids."),
    start: str = typer.Option("2024-01-01", "--start", help="First day (YYYY-MM-DD)."),
    dirty_ratio: float = typer.Option(
        0.02, "--dirty-ratio", help="Share of rows made deliberately invalid."
    ),
    seed: int = typer.Option(42, "--seed", help="Deterministic RNG seed."),
    output: Path = typer.Option(Path("data"), "--output", "-o", help="Output directory."),
) -> None:
    """
    Write `days` consecutive day files into the output directory.
    """
    rng = random.Random(seed)
    first = date.fromisoformat(start)
    output.mkdir(parents=True, exist_ok=True)
    began = time.perf_counter()

    for offset in range(days):
        day = first + timedelta(days=offset)
        path = output / f"activities_{day:%Y%m%d}.csv"
        _write_day(path, day, rows, merchants, dirty_ratio, rng)
        typer.echo(f"Wrote {rows:,} rows -> {path}")

    duration = time.perf_counter() - began
    total = days * rows
    typer.echo(
        f"Generated {total:,} rows in {duration:.2f}s "
        f"({total / max(duration, 1e-9):,.0f} rows/s)"
    )


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
