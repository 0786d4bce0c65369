"""
Infrastructure package for Merchant Insights.

Centralizes database concerns: pool creation, the schema definition step and
the append-only activity store. Keep this layer focused on I/O and resource
management, decoupled from validation and analytics logic.
"""

from merchant_insights.infrastructure.activity_store import ActivityStore
from merchant_insights.infrastructure.db_factory import build_dsn, open_async_pool
from merchant_insights.infrastructure.schema import ACTIVITIES_TABLE, ensure_schema

__all__ = [
    "ACTIVITIES_TABLE",
    "ActivityStore",
    "build_dsn",
    "ensure_schema",
    "open_async_pool",
]
