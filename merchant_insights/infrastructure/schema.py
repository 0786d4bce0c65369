"""
Schema definition for the `activities` record store.

The table is created once at startup by `ensure_schema`, independently of the
in-memory `ActivityRecord` model. Secondary indexes are not part of this step;
their lifecycle belongs to `merchant_insights.ingestion.indexes`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from merchant_insights.utils.logging import get_logger

if TYPE_CHECKING:
    from merchant_insights.infrastructure.activity_store import ActivityStore

log = get_logger(__name__)

ACTIVITIES_TABLE = "activities"

ACTIVITY_COLUMNS = (
    "event_id",
    "merchant_id",
    "event_timestamp",
    "product",
    "event_type",
    "amount",
    "status",
    "channel",
    "region",
    "merchant_tier",
)

CREATE_ACTIVITIES_TABLE = f"""
CREATE TABLE IF NOT EXISTS {ACTIVITIES_TABLE} (
    event_id        UUID PRIMARY KEY,
    merchant_id     VARCHAR NOT NULL,
    event_timestamp TIMESTAMPTZ NULL,
    product         VARCHAR NOT NULL,
    event_type      VARCHAR NOT NULL,
    amount          NUMERIC(18, 2) NOT NULL DEFAULT 0 CHECK (amount >= 0),
    status          VARCHAR NOT NULL,
    channel         VARCHAR NULL,
    region          VARCHAR NULL,
    merchant_tier   VARCHAR NULL
)
"""


async def ensure_schema(store: "ActivityStore") -> None:
    """Create the `activities` table if it does not exist yet."""
    await store.execute(CREATE_ACTIVITIES_TABLE)
    log.info("Schema ensured", extra={"table": ACTIVITIES_TABLE})


__all__ = [
    "ACTIVITIES_TABLE",
    "ACTIVITY_COLUMNS",
    "CREATE_ACTIVITIES_TABLE",
    "ensure_schema",
]
