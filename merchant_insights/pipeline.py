"""
Assembly and lifecycle of the ingestion → precompute pipeline.

Usage (example from a host service):
    from merchant_insights.infrastructure import open_async_pool
    from merchant_insights.pipeline import build_pipeline

    pool = await open_async_pool(settings)
    pipeline = build_pipeline(settings, pool)
    pipeline.start()               # returns immediately
    reader = pipeline.reader       # bind HTTP handlers to this

A run is: ensure the schema, import every day file (or take the restart
shortcut), then precompute the analytics projections. A fatal ingestion error
is recorded on the import progress and logged; the process keeps running but
analytics are not computed for that run.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from psycopg_pool import AsyncConnectionPool

from merchant_insights.accessor import InsightsReader
from merchant_insights.analytics.cache import AnalyticsCache
from merchant_insights.analytics.precomputer import AnalyticsPrecomputer, PrecomputeReport
from merchant_insights.config import Settings
from merchant_insights.errors import IngestionError
from merchant_insights.infrastructure.activity_store import ActivityStore
from merchant_insights.infrastructure.schema import ensure_schema
from merchant_insights.ingestion.importer import StreamingImporter
from merchant_insights.ingestion.indexes import IndexCoordinator
from merchant_insights.ingestion.scheduler import (
    ConcurrencyScheduler,
    ImportProgress,
    ImportSummary,
)
from merchant_insights.ingestion.validator import RowValidator, ValidationStats
from merchant_insights.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class PipelineResult:
    import_summary: Optional[ImportSummary] = None
    precompute: Optional[PrecomputeReport] = None
    validation: Dict[str, int] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Pipeline:
    """
    Owns one import run and the analytics it feeds.

    Parameters
    ----------
    store : ActivityStore
        Shared record store.
    scheduler : ConcurrencyScheduler
        Runs the file imports.
    precomputer : AnalyticsPrecomputer
        Fills the analytics cache.
    progress : ImportProgress
        Totals shared with the reader.
    cache : AnalyticsCache
        Projections shared with the reader.
    validation_stats : ValidationStats
        Counters fed by the row validator.
    """

    def __init__(
        self,
        store: ActivityStore,
        scheduler: ConcurrencyScheduler,
        precomputer: AnalyticsPrecomputer,
        progress: ImportProgress,
        cache: AnalyticsCache,
        validation_stats: ValidationStats,
    ) -> None:
        self.store = store
        self.scheduler = scheduler
        self.precomputer = precomputer
        self.progress = progress
        self.cache = cache
        self.validation_stats = validation_stats
        self.reader = InsightsReader(progress, cache)
        self._task: Optional[asyncio.Task[PipelineResult]] = None

    async def run(self) -> PipelineResult:
        await ensure_schema(self.store)
        result = PipelineResult()

        try:
            result.import_summary = await self.scheduler.run()
        except IngestionError as exc:
            self.progress.mark_failed(str(exc))
            log.exception(
                f"Import failed: {exc}",
                extra={"file": exc.file, "total_imported": self.progress.total_imported},
            )
            result.error = str(exc)
        finally:
            result.validation = self._log_validation_summary()

        if result.error is None:
            result.precompute = await self.precomputer.precompute()
        return result

    def start(self) -> "asyncio.Task[PipelineResult]":
        """Schedule `run()` on the running loop and return the task."""
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name="merchant-insights-pipeline")
        return self._task

    def _log_validation_summary(self) -> Dict[str, int]:
        counters = self.validation_stats.snapshot()
        problems = {name: count for name, count in counters.items() if name != "total" and count}
        if problems:
            log.info(
                f"Validation summary: {counters['total']:,} rows checked, "
                + ", ".join(f"{name}={count}" for name, count in problems.items()),
                extra={"validation": counters},
            )
        else:
            log.info(
                f"Validation summary: {counters['total']:,} rows checked, no issues",
                extra={"validation": counters},
            )
        return counters


def build_pipeline(settings: Settings, pool: AsyncConnectionPool) -> Pipeline:
    """Wire every component from settings around an opened pool."""
    store = ActivityStore(pool)
    stats = ValidationStats()
    validator = RowValidator(expected_year=settings.data_year, stats=stats)
    importer = StreamingImporter(
        store,
        validator,
        batch_size=settings.batch_size,
        max_write_attempts=settings.max_write_attempts,
        retry_base_delay_ms=settings.retry_base_delay_ms,
    )
    progress = ImportProgress()
    scheduler = ConcurrencyScheduler(
        store,
        importer,
        IndexCoordinator(store),
        progress,
        data_dir=settings.data_dir,
        concurrency=settings.file_concurrency,
    )
    cache = AnalyticsCache()
    precomputer = AnalyticsPrecomputer(
        store, cache, slow_query_threshold_ms=settings.slow_query_threshold_ms
    )
    return Pipeline(store, scheduler, precomputer, progress, cache, stats)


def describe(result: PipelineResult) -> Dict[str, Any]:
    """Flatten a pipeline result for JSON output."""
    return {
        "ok": result.ok,
        "error": result.error,
        "import": result.import_summary.as_dict() if result.import_summary else None,
        "validation": result.validation,
        "analytics": result.precompute.as_dict() if result.precompute else None,
    }


__all__ = ["Pipeline", "PipelineResult", "build_pipeline", "describe"]
