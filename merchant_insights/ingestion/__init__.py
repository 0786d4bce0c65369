"""
Ingestion package for Merchant Insights.

Streams daily activity CSV files into the record store: row validation,
batched idempotent writes with retry, secondary index lifecycle, and
bounded file-level concurrency.
"""

from merchant_insights.ingestion.importer import FileImportResult, StreamingImporter
from merchant_insights.ingestion.indexes import IndexCoordinator
from merchant_insights.ingestion.retry import write_with_retry
from merchant_insights.ingestion.scheduler import (
    ConcurrencyScheduler,
    ImportProgress,
    ImportSummary,
    discover_files,
)
from merchant_insights.ingestion.validator import RowValidator, SkipReason, ValidationStats

__all__ = [
    "ConcurrencyScheduler",
    "FileImportResult",
    "ImportProgress",
    "ImportSummary",
    "IndexCoordinator",
    "RowValidator",
    "SkipReason",
    "StreamingImporter",
    "ValidationStats",
    "discover_files",
    "write_with_retry",
]
