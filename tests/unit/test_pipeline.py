from __future__ import annotations

from pathlib import Path

import pytest

from merchant_insights.analytics.cache import AnalyticsCache
from merchant_insights.analytics.precomputer import AnalyticsPrecomputer
from merchant_insights.analytics.queries import PRODUCT_ADOPTION, TOP_MERCHANT
from merchant_insights.config import Settings
from merchant_insights.errors import AnalyticsNotReadyError
from merchant_insights.infrastructure.schema import CREATE_ACTIVITIES_TABLE
from merchant_insights.ingestion.importer import StreamingImporter
from merchant_insights.ingestion.indexes import IndexCoordinator
from merchant_insights.ingestion.scheduler import ConcurrencyScheduler, ImportProgress
from merchant_insights.ingestion.validator import RowValidator, ValidationStats
from merchant_insights.pipeline import Pipeline, build_pipeline, describe


def _pipeline(store, data_dir: Path) -> Pipeline:
    stats = ValidationStats()
    progress = ImportProgress()
    cache = AnalyticsCache()
    importer = StreamingImporter(
        store, RowValidator(expected_year=2024, stats=stats), retry_base_delay_ms=0
    )
    scheduler = ConcurrencyScheduler(
        store, importer, IndexCoordinator(store), progress, data_dir=data_dir
    )
    return Pipeline(store, scheduler, AnalyticsPrecomputer(store, cache), progress, cache, stats)


@pytest.mark.asyncio
async def test_run_imports_then_precomputes(make_store, data_dir, write_day_file, make_row):
    store = make_store(
        query_results={
            TOP_MERCHANT.sql: [{"merchant_id": "MRC-000001", "total_volume": 200}],
            PRODUCT_ADOPTION.sql: [{"product": "POS", "merchant_count": 1}],
        }
    )
    write_day_file("20240101", [make_row(), make_row(), make_row(event_id="nope")])
    pipeline = _pipeline(store, data_dir)

    result = await pipeline.run()

    assert result.ok
    assert store.executed[0] == CREATE_ACTIVITIES_TABLE
    assert pipeline.reader.is_import_complete()
    assert pipeline.reader.total_imported() == 2
    assert pipeline.reader.total_skipped() == 1
    assert pipeline.reader.get_top_merchant() == {
        "merchant_id": "MRC-000001",
        "total_volume": 200.0,
    }
    assert result.validation["invalid_uuid"] == 1
    assert describe(result)["import"]["total_imported"] == 2


@pytest.mark.asyncio
async def test_import_failure_is_recorded_and_analytics_stay_unready(
    make_store, data_dir, make_row
):
    (data_dir / "activities_20240101.csv").write_text(
        ",".join(make_row()) + '\n"broken\n', encoding="utf-8"
    )
    pipeline = _pipeline(make_store(), data_dir)

    result = await pipeline.run()

    assert not result.ok
    assert result.precompute is None
    assert pipeline.progress.error is not None
    assert pipeline.reader.health()["import"]["error"] == result.error
    assert not pipeline.reader.is_analytics_ready()
    with pytest.raises(AnalyticsNotReadyError):
        pipeline.reader.get_product_adoption()


@pytest.mark.asyncio
async def test_restart_skips_import_and_still_precomputes(
    make_store, data_dir, write_day_file, make_row
):
    store = make_store()
    write_day_file("20240101", [make_row()])
    await _pipeline(store, data_dir).run()
    write_day_file("20240102", [make_row() for _ in range(3)])

    second = _pipeline(store, data_dir)
    result = await second.run()

    assert result.import_summary.restarted
    assert await store.count() == 1
    assert second.reader.total_imported() == 1
    assert second.reader.is_analytics_ready()


@pytest.mark.asyncio
async def test_start_returns_a_single_background_task(make_store, data_dir):
    pipeline = _pipeline(make_store(), data_dir)

    task = pipeline.start()
    assert pipeline.start() is task
    result = await task

    assert result.ok
    assert pipeline.reader.is_analytics_ready()


def test_build_pipeline_wires_settings(tmp_path: Path):
    settings = Settings(data_dir=tmp_path, file_concurrency=3, batch_size=17, data_year=2025)

    pipeline = build_pipeline(settings, pool=None)

    assert pipeline.scheduler.concurrency == 3
    assert pipeline.scheduler.data_dir == tmp_path
    assert pipeline.scheduler._importer.batch_size == 17
    assert pipeline.reader.health()["analytics"] == {"ready": False}
