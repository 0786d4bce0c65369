"""
File-level scheduling of an import run.

Day files are discovered in the data directory, sorted, and imported in
groups of `concurrency` files at a time. Within a group files run in parallel;
each file is sequential internally. Totals are folded into `ImportProgress`
after each file completes.

A run only happens against an empty store: if `activities` already holds
rows, ingestion is skipped entirely and the existing row count is reported
(restart shortcut). There is no row-level resume.
"""

from __future__ import annotations

import asyncio
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from merchant_insights.errors import IngestionError
from merchant_insights.infrastructure.activity_store import ActivityStore
from merchant_insights.ingestion.importer import FileImportResult, StreamingImporter
from merchant_insights.ingestion.indexes import IndexCoordinator
from merchant_insights.utils.logging import get_logger
from merchant_insights.utils.profiler import profile_block

log = get_logger(__name__)

DAY_FILE_PATTERN = re.compile(r"^activities_\d{8}\.csv$")
DEFAULT_FILE_CONCURRENCY = 2


class ImportProgress:
    """Running totals shared by concurrent file workers and read by the serving layer."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._imported = 0
        self._skipped = 0
        self._complete = False
        self._error: Optional[str] = None

    def add(self, imported: int, skipped: int) -> None:
        with self._lock:
            self._imported += imported
            self._skipped += skipped

    def mark_complete(self, existing_rows: Optional[int] = None) -> None:
        with self._lock:
            if existing_rows is not None:
                self._imported = existing_rows
            self._complete = True

    def mark_failed(self, error: str) -> None:
        with self._lock:
            self._error = error

    @property
    def total_imported(self) -> int:
        with self._lock:
            return self._imported

    @property
    def total_skipped(self) -> int:
        with self._lock:
            return self._skipped

    @property
    def complete(self) -> bool:
        with self._lock:
            return self._complete

    @property
    def error(self) -> Optional[str]:
        with self._lock:
            return self._error


@dataclass
class ImportSummary:
    files: List[FileImportResult] = field(default_factory=list)
    total_imported: int = 0
    total_skipped: int = 0
    restarted: bool = False
    duration_seconds: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "files": len(self.files),
            "total_imported": self.total_imported,
            "total_skipped": self.total_skipped,
            "restarted": self.restarted,
            "duration_seconds": round(self.duration_seconds, 2),
        }


def discover_files(data_dir: Path) -> List[Path]:
    """Return day files in `data_dir`, sorted lexicographically by name."""
    return sorted(
        (p for p in data_dir.iterdir() if p.is_file() and DAY_FILE_PATTERN.match(p.name)),
        key=lambda p: p.name,
    )


def _groups(files: List[Path], size: int) -> List[List[Path]]:
    return [files[i : i + size] for i in range(0, len(files), size)]


class ConcurrencyScheduler:
    """
    Runs bounded-parallel file imports.

    Parameters
    ----------
    store : ActivityStore
        Used for the restart-shortcut row count.
    importer : StreamingImporter
        Per-file importer shared by all workers.
    indexes : IndexCoordinator
        Suspends secondary indexes around the load.
    progress : ImportProgress
        Shared totals, updated once per finished file.
    data_dir : Path
        Directory scanned for `activities_YYYYMMDD.csv`.
    concurrency : int
        Files imported at the same time.
    """

    def __init__(
        self,
        store: ActivityStore,
        importer: StreamingImporter,
        indexes: IndexCoordinator,
        progress: ImportProgress,
        data_dir: Path,
        concurrency: int = DEFAULT_FILE_CONCURRENCY,
    ) -> None:
        self._store = store
        self._importer = importer
        self._indexes = indexes
        self.progress = progress
        self.data_dir = Path(data_dir)
        self.concurrency = max(concurrency, 1)

    async def run(self) -> ImportSummary:
        """
        Import every day file, or skip straight through when the store has data.

        Raises
        ------
        IngestionError
            The first fatal file error; files that finished before it stay counted.
        """
        existing = await self._store.count()
        if existing > 0:
            log.info(
                f"Database already contains {existing:,} records. Skipping import.",
                extra={"existing_rows": existing},
            )
            # A crash mid-load can leave the indexes dropped.
            await self._indexes.restore()
            self.progress.mark_complete(existing_rows=existing)
            return ImportSummary(total_imported=existing, restarted=True)

        if not self.data_dir.is_dir():
            log.warning(f"Data directory not found: {self.data_dir.resolve()}. Skipping import.")
            await self._indexes.restore()
            self.progress.mark_complete()
            return ImportSummary()

        files = discover_files(self.data_dir)
        if not files:
            log.warning(
                "No CSV files found in data directory.",
                extra={"data_dir": str(self.data_dir)},
            )
            await self._indexes.restore()
            self.progress.mark_complete()
            return ImportSummary()

        log.info(
            f"Found {len(files)} CSV file(s). Starting import...",
            extra={"files": len(files), "concurrency": self.concurrency},
        )
        summary = ImportSummary()
        with profile_block("import") as stats:
            async with self._indexes.bulk_load():
                for group in _groups(files, self.concurrency):
                    await self._run_group(group, summary)

        summary.total_imported = self.progress.total_imported
        summary.total_skipped = self.progress.total_skipped
        summary.duration_seconds = stats.duration_seconds
        self.progress.mark_complete()
        log.info(
            f"Import complete. Total imported: {summary.total_imported}, "
            f"total skipped: {summary.total_skipped}",
            extra={**summary.as_dict(), "peak_rss_mb": stats.peak_rss_mb},
        )
        return summary

    async def _run_group(self, group: List[Path], summary: ImportSummary) -> None:
        outcomes = await asyncio.gather(
            *(self._import_one(path) for path in group), return_exceptions=True
        )
        failures: List[BaseException] = []
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                failures.append(outcome)
            else:
                summary.files.append(outcome)
        if failures:
            first = failures[0]
            if isinstance(first, IngestionError) or not isinstance(first, Exception):
                raise first
            raise IngestionError(f"Import aborted: {first}") from first

    async def _import_one(self, path: Path) -> FileImportResult:
        result = await self._importer.import_file(path)
        self.progress.add(result.imported, result.skipped)
        return result


__all__ = [
    "ConcurrencyScheduler",
    "DAY_FILE_PATTERN",
    "ImportProgress",
    "ImportSummary",
    "discover_files",
]
