"""
Database connection factory utilities for Merchant Insights.

Builds the PostgreSQL DSN from settings and opens the async connection pool
shared by the importer, the index coordinator and the analytics queries.
The pool is owned by whoever opens it (the pipeline assembly or a test);
there is no module-level singleton.

Includes retry logic for transient connection failures using tenacity.
"""

from __future__ import annotations

from typing import Optional

import psycopg
from psycopg_pool import AsyncConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from merchant_insights.config import Settings, get_settings
from merchant_insights.utils.logging import get_logger

log = get_logger(__name__)

POOL_OPEN_TIMEOUT_SECONDS = 10.0


def build_dsn(settings: Optional[Settings] = None) -> str:
    """Compose a DSN string from settings."""
    settings = settings or get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, OSError)),
    reraise=True,
)
async def open_async_pool(
    settings: Optional[Settings] = None,
    dsn_override: Optional[str] = None,
) -> AsyncConnectionPool:
    """
    Open an asynchronous connection pool with automatic retry.

    Retries up to 3 times with exponential backoff when the database is not
    reachable yet (e.g. the container is still starting).

    Parameters
    ----------
    settings : Settings | None
        Settings to read connection and pool sizes from. Defaults to the cached settings.
    dsn_override : str | None
        Explicit DSN, mainly for tests.

    Returns
    -------
    AsyncConnectionPool
        An opened pool; the caller is responsible for closing it.

    Raises
    ------
    psycopg.OperationalError
        If the pool cannot connect after all retry attempts.
    """
    settings = settings or get_settings()
    pool = AsyncConnectionPool(
        conninfo=dsn_override or build_dsn(settings),
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
        open=False,
    )
    try:
        await pool.open(wait=True, timeout=POOL_OPEN_TIMEOUT_SECONDS)
    except Exception:
        await pool.close()
        raise
    log.info(
        "Database pool opened",
        extra={
            "db_host": settings.db_host,
            "db_name": settings.db_name,
            "pool_max_size": settings.db_pool_max_size,
        },
    )
    return pool


__all__ = [
    "build_dsn",
    "open_async_pool",
]
