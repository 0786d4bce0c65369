"""
Exception hierarchy for Merchant Insights.

Row-level problems never raise: the validator reports them as skip reasons or
warning counters. The types below cover failures that end an import run or
a single projection, plus the readiness signal for analytics reads.
"""

from __future__ import annotations

from pathlib import Path


class MerchantInsightsError(Exception):
    """Base exception for all Merchant Insights failures."""


class IngestionError(MerchantInsightsError):
    """Raised when an import run must abort."""

    def __init__(self, message: str, file: Path | str | None = None) -> None:
        super().__init__(message)
        self.file = str(file) if file is not None else None


class ParseFailure(IngestionError):
    """Raised when a CSV file is structurally malformed or unreadable."""


class FatalWriteFailure(IngestionError):
    """Raised when a bulk write still fails after every retry attempt."""


class PrecomputeQueryFailure(MerchantInsightsError):
    """Raised when one analytics projection could not be computed."""

    def __init__(self, projection: str, cause: BaseException) -> None:
        super().__init__(f"{projection}: {cause}")
        self.projection = projection
        self.cause = cause


class AnalyticsNotReadyError(MerchantInsightsError):
    """Raised when analytics are read before the first precompute pass settles."""

    def __init__(self) -> None:
        super().__init__("Analytics are being computed. Please try again in a few moments.")


__all__ = [
    "AnalyticsNotReadyError",
    "FatalWriteFailure",
    "IngestionError",
    "MerchantInsightsError",
    "ParseFailure",
    "PrecomputeQueryFailure",
]
