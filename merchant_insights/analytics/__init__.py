"""Precomputed analytics projections and the cache that serves them."""

from merchant_insights.analytics.cache import AnalyticsCache, AnalyticsSnapshot
from merchant_insights.analytics.precomputer import AnalyticsPrecomputer, PrecomputeReport
from merchant_insights.analytics.queries import PROJECTION_QUERIES, ProjectionQuery

__all__ = [
    "AnalyticsCache",
    "AnalyticsPrecomputer",
    "AnalyticsSnapshot",
    "PROJECTION_QUERIES",
    "PrecomputeReport",
    "ProjectionQuery",
]
