"""
Streaming importer for a single day file.

The CSV is read by a generator that validates rows and yields them in batches
of at most `batch_size` records. The importer pulls one batch at a time (the
parsing runs in a worker thread so the event loop stays responsive), flushes
it through the retrying idempotent bulk write, and only then asks for the
next batch. Memory is therefore bounded by a single batch, not by file size.
"""

from __future__ import annotations

import asyncio
import csv
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional

from merchant_insights.domain.models import ActivityRecord
from merchant_insights.errors import FatalWriteFailure, ParseFailure
from merchant_insights.infrastructure.activity_store import ActivityStore
from merchant_insights.ingestion.retry import write_with_retry
from merchant_insights.ingestion.validator import RowValidator, SkipReason
from merchant_insights.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_BATCH_SIZE = 5_000


@dataclass
class ParsedBatch:
    """Validated records plus the row accounting for the slice of file they came from."""

    records: List[ActivityRecord] = field(default_factory=list)
    seen: int = 0
    skipped: int = 0


@dataclass(frozen=True)
class FileImportResult:
    file: str
    imported: int
    skipped: int
    seen: int


def read_batches(path: Path, validator: RowValidator, batch_size: int) -> Iterator[ParsedBatch]:
    """
    Yield validated batches from a CSV file without loading it into memory.

    The final batch may be smaller than `batch_size` and may carry no records
    at all when the tail of the file was entirely rejected.

    Raises
    ------
    ParseFailure
        If the file cannot be opened or decoded, or its CSV structure is malformed.
    """
    try:
        handle = path.open("r", encoding="utf-8-sig", newline="")
    except OSError as exc:
        raise ParseFailure(f"Cannot open {path}: {exc}", file=path) from exc

    with handle:
        reader = csv.DictReader(handle, strict=True)
        batch = ParsedBatch()
        try:
            for raw in reader:
                batch.seen += 1
                result = validator.validate(raw, reader.line_num)
                if isinstance(result, SkipReason):
                    batch.skipped += 1
                    continue
                batch.records.append(result)
                if len(batch.records) >= batch_size:
                    yield batch
                    batch = ParsedBatch()
        except (csv.Error, UnicodeDecodeError) as exc:
            raise ParseFailure(
                f"Malformed CSV in {path.name} near line {reader.line_num}: {exc}", file=path
            ) from exc
        if batch.seen:
            yield batch


class StreamingImporter:
    """
    Imports one CSV file at a time into the activity store.

    Parameters
    ----------
    store : ActivityStore
        Destination of the bulk writes.
    validator : RowValidator
        Shared validator; its stats accumulate across files.
    batch_size : int
        Maximum records per bulk write.
    max_write_attempts : int
        Attempts per bulk write before the run is aborted.
    retry_base_delay_ms : int
        Base of the linear backoff between attempts.
    """

    def __init__(
        self,
        store: ActivityStore,
        validator: RowValidator,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_write_attempts: int = 3,
        retry_base_delay_ms: int = 500,
    ) -> None:
        self._store = store
        self._validator = validator
        self.batch_size = batch_size
        self.max_write_attempts = max_write_attempts
        self.retry_base_delay_ms = retry_base_delay_ms

    async def import_file(self, path: Path) -> FileImportResult:
        """
        Stream, validate and persist one file.

        Raises
        ------
        ParseFailure
            On malformed CSV structure; batches flushed before the error stay committed.
        FatalWriteFailure
            When a bulk write keeps failing after every retry.
        """
        path = Path(path)
        log.info(f"[{path.name}] import started", extra={"file": path.name})
        batches = read_batches(path, self._validator, self.batch_size)
        imported = skipped = seen = 0

        try:
            while True:
                batch: Optional[ParsedBatch] = await asyncio.to_thread(next, batches, None)
                if batch is None:
                    break
                seen += batch.seen
                skipped += batch.skipped
                if batch.records:
                    imported += await self._flush(path, batch.records)
        finally:
            batches.close()

        log.info(
            f"[{path.name}] imported: {imported}, skipped: {skipped}",
            extra={"file": path.name, "imported": imported, "skipped": skipped, "seen": seen},
        )
        return FileImportResult(file=path.name, imported=imported, skipped=skipped, seen=seen)

    async def _flush(self, path: Path, records: List[ActivityRecord]) -> int:
        try:
            inserted = await write_with_retry(
                lambda: self._store.insert_ignore(records),
                max_attempts=self.max_write_attempts,
                base_delay_ms=self.retry_base_delay_ms,
            )
        except Exception as exc:  # noqa: BLE001 - every write error past retry is fatal
            raise FatalWriteFailure(
                f"Bulk write failed for {path.name} after "
                f"{self.max_write_attempts} attempt(s): {exc}",
                file=path,
            ) from exc
        log.debug(
            f"[{path.name}] batch flushed",
            extra={"file": path.name, "rows": len(records), "inserted": inserted},
        )
        return inserted


__all__ = [
    "DEFAULT_BATCH_SIZE",
    "FileImportResult",
    "ParsedBatch",
    "StreamingImporter",
    "read_batches",
]
