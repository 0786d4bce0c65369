from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import typer

from merchant_insights.accessor import InsightsReader
from merchant_insights.config import Settings, get_settings
from merchant_insights.infrastructure.db_factory import open_async_pool
from merchant_insights.pipeline import PipelineResult, build_pipeline, describe
from merchant_insights.reporter import print_report
from merchant_insights.utils.logging import configure_logging

app = typer.Typer(help="Merchant Insights ingestion and analytics CLI.")


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"data_dir={settings.data_dir} batch={settings.batch_size} "
        f"concurrency={settings.file_concurrency} year={settings.data_year}"
    )


async def _run_pipeline(settings: Settings) -> tuple[PipelineResult, InsightsReader]:
    pool = await open_async_pool(settings)
    try:
        pipeline = build_pipeline(settings, pool)
        result = await pipeline.start()
        return result, pipeline.reader
    finally:
        await pool.close()


@app.command()
def run(
    data_dir: Optional[Path] = typer.Option(
        None,
        "--data-dir",
        "-d",
        help="Directory holding activities_YYYYMMDD.csv files (default from settings).",
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print the run summary as JSON instead of tables.",
    ),
) -> None:
    """
    Import the day files, pre-compute analytics and print a report.
    """
    settings = get_settings()
    if data_dir is not None:
        settings = settings.model_copy(update={"data_dir": data_dir})
    configure_logging(level=settings.log_level, json_logs=settings.log_json)

    typer.echo(
        f"Running pipeline for data_dir={settings.data_dir} "
        f"(batch={settings.batch_size}, concurrency={settings.file_concurrency})."
    )
    result, reader = asyncio.run(_run_pipeline(settings))

    if as_json:
        payload = describe(result)
        payload["health"] = reader.health()
        typer.echo(json.dumps(payload, indent=2, default=str))
    else:
        print_report(result, reader)
    if not result.ok:
        raise typer.Exit(code=1)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
