"""
PostgreSQL-backed record store for activity events.

All access goes through a psycopg `AsyncConnectionPool`. Each method borrows a
connection for the duration of one statement; the pool commits on successful
exit and rolls back on error, so a failed batch never leaves a half-written
transaction behind.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from merchant_insights.domain.models import ActivityRecord
from merchant_insights.infrastructure.schema import ACTIVITIES_TABLE, ACTIVITY_COLUMNS

# One round trip per batch: ten parallel arrays unnested into rows. Rows whose
# event_id already exists (in the table or earlier in the same batch) are dropped.
INSERT_IGNORE_SQL = f"""
INSERT INTO {ACTIVITIES_TABLE} ({", ".join(ACTIVITY_COLUMNS)})
SELECT * FROM unnest(
    %s::uuid[],
    %s::varchar[],
    %s::timestamptz[],
    %s::varchar[],
    %s::varchar[],
    %s::numeric[],
    %s::varchar[],
    %s::varchar[],
    %s::varchar[],
    %s::varchar[]
)
ON CONFLICT (event_id) DO NOTHING
"""

INDEX_NAMES_SQL = """
SELECT indexname
FROM pg_indexes
WHERE schemaname = current_schema()
  AND tablename = %s
ORDER BY indexname
"""


def _enum_value(member: Any) -> Optional[str]:
    return member.value if member is not None else None


def _columns(records: Sequence[ActivityRecord]) -> List[list]:
    """Transpose records into one list per column, in ACTIVITY_COLUMNS order."""
    return [
        [r.event_id for r in records],
        [r.merchant_id for r in records],
        [r.event_timestamp for r in records],
        [r.product.value for r in records],
        [r.event_type for r in records],
        [r.amount for r in records],
        [r.status.value for r in records],
        [_enum_value(r.channel) for r in records],
        [r.region for r in records],
        [_enum_value(r.merchant_tier) for r in records],
    ]


class ActivityStore:
    """
    Append-only access to the `activities` table.

    There is deliberately no update or delete method.
    """

    def __init__(self, pool: AsyncConnectionPool) -> None:
        self._pool = pool

    async def count(self) -> int:
        async with self._pool.connection() as conn:
            cur = await conn.execute(f"SELECT COUNT(*) FROM {ACTIVITIES_TABLE}")
            row = await cur.fetchone()
        return int(row[0]) if row else 0

    async def insert_ignore(self, records: Sequence[ActivityRecord]) -> int:
        """
        Bulk insert records, silently ignoring existing primary keys.

        Returns
        -------
        int
            Number of rows actually inserted.
        """
        if not records:
            return 0
        async with self._pool.connection() as conn:
            cur = await conn.execute(INSERT_IGNORE_SQL, _columns(records))
            inserted = cur.rowcount
        return max(inserted, 0)

    async def index_names(self) -> List[str]:
        async with self._pool.connection() as conn:
            cur = await conn.execute(INDEX_NAMES_SQL, (ACTIVITIES_TABLE,))
            rows = await cur.fetchall()
        return [row[0] for row in rows]

    async def execute(self, sql: str) -> None:
        async with self._pool.connection() as conn:
            await conn.execute(sql)

    async def fetch_all(self, sql: str) -> List[Dict[str, Any]]:
        async with self._pool.connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(sql)
                return await cur.fetchall()


__all__ = ["ActivityStore", "INSERT_IGNORE_SQL"]
