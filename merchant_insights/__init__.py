"""
Merchant Insights - ingestion and precomputed analytics for merchant activity.

This package loads daily merchant-activity CSV files into PostgreSQL and keeps
five analytics projections precomputed in memory:

- Streaming, validated CSV import with idempotent bulk writes
- Bounded file-level concurrency with secondary indexes suspended during loads
- Concurrent precomputation of the projections into a readiness-gated cache
- A read-only accessor for a serving layer

Ambient concerns (configuration, structured logging, profiling) live in
`config` and `utils`.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from merchant_insights.accessor import InsightsReader
from merchant_insights.config import Settings, get_settings
from merchant_insights.errors import (
    AnalyticsNotReadyError,
    IngestionError,
    MerchantInsightsError,
)
from merchant_insights.pipeline import Pipeline, PipelineResult, build_pipeline
from merchant_insights.utils.logging import configure_logging, get_logger
from merchant_insights.utils.profiler import ProfileStats, profile_block

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Pipeline
    "Pipeline",
    "PipelineResult",
    "build_pipeline",
    # Reading
    "InsightsReader",
    # Errors
    "AnalyticsNotReadyError",
    "IngestionError",
    "MerchantInsightsError",
    # Logging
    "configure_logging",
    "get_logger",
    # Profiling
    "ProfileStats",
    "profile_block",
]
