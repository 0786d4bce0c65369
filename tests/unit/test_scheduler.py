from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from merchant_insights.domain.models import ActivityRecord, Product, Status
from merchant_insights.errors import IngestionError, ParseFailure
from merchant_insights.ingestion.importer import FileImportResult, StreamingImporter
from merchant_insights.ingestion.indexes import SECONDARY_INDEXES, IndexCoordinator
from merchant_insights.ingestion.scheduler import (
    ConcurrencyScheduler,
    ImportProgress,
    discover_files,
)
from merchant_insights.ingestion.validator import RowValidator

SCENARIO_EVENT_ID = "a1b2c3d4-e5f6-7890-abcd-ef1234567890"


def _scheduler(
    store, data_dir: Path, concurrency: int = 2, importer=None
) -> ConcurrencyScheduler:
    importer = importer or StreamingImporter(
        store, RowValidator(expected_year=2024), batch_size=2, retry_base_delay_ms=0
    )
    return ConcurrencyScheduler(
        store,
        importer,
        IndexCoordinator(store),
        ImportProgress(),
        data_dir=data_dir,
        concurrency=concurrency,
    )


def _existing_record() -> ActivityRecord:
    return ActivityRecord(
        event_id=SCENARIO_EVENT_ID,
        merchant_id="MRC-123456",
        product=Product.POS,
        event_type="CARD_TRANSACTION",
        status=Status.SUCCESS,
    )


def test_discover_files_filters_and_sorts(data_dir: Path):
    for name in ["activities_20240102.csv", "activities_20240101.csv", "notes.csv", "x.txt"]:
        (data_dir / name).write_text("", encoding="utf-8")

    assert [p.name for p in discover_files(data_dir)] == [
        "activities_20240101.csv",
        "activities_20240102.csv",
    ]


@pytest.mark.asyncio
async def test_duplicate_row_in_one_file_is_imported_once(
    fake_store, data_dir, write_day_file, make_row
):
    row = make_row(
        event_id=SCENARIO_EVENT_ID,
        merchant_id="MRC-123456",
        amount="1500.00",
        event_timestamp="2024-03-15T10:30:00Z",
    )
    write_day_file("20240315", [row, dict(row)])
    scheduler = _scheduler(fake_store, data_dir)

    summary = await scheduler.run()

    assert summary.total_imported == 1
    assert summary.total_skipped == 0
    assert scheduler.progress.complete


@pytest.mark.asyncio
async def test_out_of_range_timestamp_offset_does_not_abort_import(
    fake_store, data_dir, write_day_file, make_row
):
    edge = make_row(event_timestamp="0001-01-01T00:00:00+01:00")
    write_day_file("20240315", [make_row(), make_row(), make_row(), edge])
    scheduler = _scheduler(fake_store, data_dir)

    summary = await scheduler.run()

    assert summary.total_imported == 4
    assert summary.total_skipped == 0
    assert fake_store.rows[edge["event_id"]].event_timestamp is None


@pytest.mark.asyncio
async def test_unknown_status_row_is_skipped(fake_store, data_dir, write_day_file, make_row):
    write_day_file("20240315", [make_row(), make_row(status="CANCELLED")])

    summary = await _scheduler(fake_store, data_dir).run()

    assert summary.total_imported == 1
    assert summary.total_skipped == 1
    assert len(fake_store.rows) == 1


@pytest.mark.asyncio
async def test_blank_timestamp_row_is_stored(fake_store, data_dir, write_day_file, make_row):
    write_day_file("20240315", [make_row(event_timestamp="")])

    await _scheduler(fake_store, data_dir).run()

    (record,) = fake_store.rows.values()
    assert record.event_timestamp is None


@pytest.mark.asyncio
async def test_concurrent_files_sum_without_lost_updates(
    fake_store, data_dir, write_day_file, make_row
):
    write_day_file("20240101", [make_row() for _ in range(25)])
    write_day_file("20240102", [make_row() for _ in range(17)])

    summary = await _scheduler(fake_store, data_dir, concurrency=2).run()

    assert summary.total_imported == 42
    assert await fake_store.count() == 42
    assert len(summary.files) == 2


@pytest.mark.asyncio
async def test_populated_store_takes_restart_shortcut(
    make_store, data_dir, write_day_file, make_row
):
    store = make_store(existing=[_existing_record()])
    write_day_file("20240101", [make_row() for _ in range(5)])
    scheduler = _scheduler(store, data_dir)

    summary = await scheduler.run()

    assert summary.restarted
    assert await store.count() == 1
    assert scheduler.progress.total_imported == 1
    assert scheduler.progress.complete
    assert set(await store.index_names()) >= set(SECONDARY_INDEXES)


@pytest.mark.asyncio
async def test_missing_data_dir_completes_with_zero_totals(fake_store, tmp_path: Path):
    scheduler = _scheduler(fake_store, tmp_path / "missing")

    summary = await scheduler.run()

    assert summary.total_imported == 0
    assert scheduler.progress.complete


@pytest.mark.asyncio
async def test_empty_data_dir_completes(fake_store, data_dir):
    scheduler = _scheduler(fake_store, data_dir)

    await scheduler.run()

    assert scheduler.progress.complete
    assert scheduler.progress.total_imported == 0


@pytest.mark.asyncio
async def test_indexes_are_suspended_during_load_and_restored(
    make_store, data_dir, write_day_file, make_row
):
    store = make_store(index_names=["activities_pkey", *SECONDARY_INDEXES])
    seen_during_load: list[list[str]] = []
    original_insert = store.insert_ignore

    async def spying_insert(records):
        seen_during_load.append(await store.index_names())
        return await original_insert(records)

    store.insert_ignore = spying_insert
    write_day_file("20240101", [make_row()])

    await _scheduler(store, data_dir).run()

    assert seen_during_load == [["activities_pkey"]]
    assert set(await store.index_names()) == {"activities_pkey", *SECONDARY_INDEXES}


class _GatedImporter:
    """Tracks how many files are in flight at once."""

    def __init__(self, failing: str | None = None) -> None:
        self.active = 0
        self.max_active = 0
        self.started: list[str] = []
        self.failing = failing

    async def import_file(self, path: Path) -> FileImportResult:
        self.started.append(path.name)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0.01)
            if path.name == self.failing:
                raise ParseFailure("broken", file=path)
            return FileImportResult(file=path.name, imported=10, skipped=1, seen=11)
        finally:
            self.active -= 1


@pytest.mark.asyncio
async def test_file_concurrency_is_bounded(fake_store, data_dir, write_day_file):
    for day in range(1, 6):
        write_day_file(f"202401{day:02d}", [])
    importer = _GatedImporter()

    summary = await _scheduler(fake_store, data_dir, concurrency=2, importer=importer).run()

    assert importer.max_active == 2
    assert summary.total_imported == 50
    assert summary.total_skipped == 5


@pytest.mark.asyncio
async def test_fatal_file_error_aborts_run_after_group(fake_store, data_dir, write_day_file):
    for day in range(1, 5):
        write_day_file(f"202401{day:02d}", [])
    importer = _GatedImporter(failing="activities_20240101.csv")
    scheduler = _scheduler(fake_store, data_dir, concurrency=2, importer=importer)

    with pytest.raises(IngestionError):
        await scheduler.run()

    assert importer.started == ["activities_20240101.csv", "activities_20240102.csv"]
    assert scheduler.progress.total_imported == 10
    assert not scheduler.progress.complete
    assert set(await fake_store.index_names()) == set(SECONDARY_INDEXES)


def test_import_progress_marks():
    progress = ImportProgress()
    progress.add(3, 1)
    progress.add(2, 0)
    progress.mark_failed("boom")

    assert (progress.total_imported, progress.total_skipped) == (5, 1)
    assert progress.error == "boom"
    assert not progress.complete
    progress.mark_complete(existing_rows=9)
    assert progress.total_imported == 9
