"""
Secondary index lifecycle around bulk loads.

Maintaining five indexes while inserting millions of rows is much slower than
building them once afterwards, so the coordinator drops every secondary index
before a load and recreates the fixed set when the load ends. Secondary
indexes are recognised by the `idx_activities_` name prefix; the primary key
index (`activities_pkey`) never matches it and is never touched.
"""

from __future__ import annotations

import contextlib
from typing import AsyncIterator, Dict, List

from merchant_insights.infrastructure.activity_store import ActivityStore
from merchant_insights.infrastructure.schema import ACTIVITIES_TABLE
from merchant_insights.utils.logging import get_logger

log = get_logger(__name__)

SECONDARY_INDEX_PREFIX = f"idx_{ACTIVITIES_TABLE}_"

# Shaped after the analytics queries: status/product filters, merchant grouping,
# and month bucketing over timestamps.
SECONDARY_INDEXES: Dict[str, str] = {
    f"{SECONDARY_INDEX_PREFIX}status_product": "(status, product)",
    f"{SECONDARY_INDEX_PREFIX}merchant_id": "(merchant_id)",
    f"{SECONDARY_INDEX_PREFIX}event_timestamp": "(event_timestamp)",
    f"{SECONDARY_INDEX_PREFIX}merchant_status_product": "(merchant_id, status, product)",
    f"{SECONDARY_INDEX_PREFIX}timestamp_status": "(event_timestamp, status)",
}


def create_index_sql(name: str, columns: str) -> str:
    return f"CREATE INDEX IF NOT EXISTS {name} ON {ACTIVITIES_TABLE} {columns}"


def drop_index_sql(name: str) -> str:
    return f"DROP INDEX IF EXISTS {name}"


class IndexCoordinator:
    """Suspends and restores secondary indexes on the `activities` table."""

    def __init__(self, store: ActivityStore) -> None:
        self._store = store

    async def suspend(self) -> List[str]:
        """Drop every secondary index. Returns the names dropped."""
        names = [
            name for name in await self._store.index_names()
            if name.startswith(SECONDARY_INDEX_PREFIX)
        ]
        for name in names:
            await self._store.execute(drop_index_sql(name))
        log.info("Secondary indexes dropped for bulk load", extra={"indexes": names})
        return names

    async def restore(self) -> List[str]:
        """Create the fixed index set; indexes that already exist are left alone."""
        for name, columns in SECONDARY_INDEXES.items():
            await self._store.execute(create_index_sql(name, columns))
        names = list(SECONDARY_INDEXES)
        log.info("Secondary indexes ensured", extra={"indexes": names})
        return names

    @contextlib.asynccontextmanager
    async def bulk_load(self) -> AsyncIterator[None]:
        """Suspend indexes for the duration of the block, restoring them however it ends."""
        await self.suspend()
        try:
            yield
        finally:
            await self.restore()


__all__ = [
    "IndexCoordinator",
    "SECONDARY_INDEXES",
    "SECONDARY_INDEX_PREFIX",
    "create_index_sql",
    "drop_index_sql",
]
