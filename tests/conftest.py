"""
Pytest configuration for Merchant Insights.

Provides fixtures for:
- Settings override and database connection management for integration tests
- An in-memory stand-in for `ActivityStore` used by unit tests
- Day-file writers for CSV-driven tests
"""

from __future__ import annotations

import csv
import os
import re
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, Generator, Iterable, List, Optional

import psycopg
import pytest

from merchant_insights.config import Settings
from merchant_insights.domain.models import ActivityRecord
from merchant_insights.infrastructure.db_factory import build_dsn
from merchant_insights.infrastructure.schema import ACTIVITY_COLUMNS

_CREATE_INDEX = re.compile(r"CREATE INDEX IF NOT EXISTS (\S+)")
_DROP_INDEX = re.compile(r"DROP INDEX IF EXISTS (\S+)")


class FakeStore:
    """
    In-memory `ActivityStore` with the same async surface.

    `insert_failures` are raised, in order, by the next `insert_ignore` calls.
    `query_results` maps SQL text to the rows (or exception) `fetch_all` returns.
    """

    def __init__(
        self,
        existing: Iterable[ActivityRecord] = (),
        index_names: Iterable[str] = (),
        insert_failures: Iterable[BaseException] = (),
        query_results: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.rows: Dict[str, ActivityRecord] = {r.event_id: r for r in existing}
        self.indexes = set(index_names)
        self.insert_failures: List[BaseException] = list(insert_failures)
        self.query_results: Dict[str, Any] = dict(query_results or {})
        self.executed: List[str] = []
        self.insert_calls = 0
        self.batch_sizes: List[int] = []
        self.fetched: List[str] = []

    async def count(self) -> int:
        return len(self.rows)

    async def insert_ignore(self, records) -> int:
        self.insert_calls += 1
        if self.insert_failures:
            raise self.insert_failures.pop(0)
        self.batch_sizes.append(len(records))
        inserted = 0
        for record in records:
            if record.event_id not in self.rows:
                self.rows[record.event_id] = record
                inserted += 1
        return inserted

    async def index_names(self) -> List[str]:
        return sorted(self.indexes)

    async def execute(self, sql: str) -> None:
        self.executed.append(sql)
        created = _CREATE_INDEX.search(sql)
        if created:
            self.indexes.add(created.group(1))
        dropped = _DROP_INDEX.search(sql)
        if dropped:
            self.indexes.discard(dropped.group(1))

    async def fetch_all(self, sql: str) -> List[Dict[str, Any]]:
        self.fetched.append(sql)
        result = self.query_results.get(sql, [])
        if isinstance(result, BaseException):
            raise result
        return [dict(row) for row in result]


def activity_row(**overrides: Any) -> Dict[str, str]:
    """A valid CSV row as a dict of strings; override any column."""
    row = {
        "event_id": str(uuid.uuid4()),
        "merchant_id": "MRC-000001",
        "event_timestamp": "2024-03-15T10:30:00Z",
        "product": "POS",
        "event_type": "CARD_TRANSACTION",
        "amount": "100.00",
        "status": "SUCCESS",
        "channel": "POS",
        "region": "Lagos",
        "merchant_tier": "VERIFIED",
    }
    row.update({key: str(value) for key, value in overrides.items()})
    return row


def write_csv(
    path: Path, rows: Iterable[Dict[str, str]], header: Iterable[str] = ACTIVITY_COLUMNS
) -> Path:
    header = list(header)
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=header, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(rows)
    return path


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def make_store() -> Callable[..., FakeStore]:
    return FakeStore


@pytest.fixture
def make_row() -> Callable[..., Dict[str, str]]:
    return activity_row


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "data"
    directory.mkdir()
    return directory


@pytest.fixture
def write_day_file(data_dir: Path) -> Callable[..., Path]:
    """Write `activities_<day>.csv` into the temporary data directory."""

    def _write(day: str, rows: Iterable[Dict[str, str]], **kwargs: Any) -> Path:
        return write_csv(data_dir / f"activities_{day}.csv", rows, **kwargs)

    return _write


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "merchant_insights"),
        log_level="DEBUG",
        retry_base_delay_ms=10,
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return build_dsn(test_settings)


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped database connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn, autocommit=True)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="function")
def clean_activities_table(db_connection: psycopg.Connection):
    """
    Drop the activities table around each test function.

    Each test recreates it through the pipeline's schema step.
    """
    with db_connection.cursor() as cur:
        cur.execute("DROP TABLE IF EXISTS activities CASCADE;")
    yield
    with db_connection.cursor() as cur:
        cur.execute("DROP TABLE IF EXISTS activities CASCADE;")
