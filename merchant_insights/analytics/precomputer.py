"""
Computes the five analytics projections and publishes them to the cache.

The queries are independent, so they are launched together and joined. Each
successful query replaces its own cache slot as soon as it completes; a failed
query is logged and leaves its slot as it was. Once all five have settled the
cache is marked ready, even when some of them failed.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from merchant_insights.analytics.cache import AnalyticsCache
from merchant_insights.analytics.queries import PROJECTION_QUERIES, ProjectionQuery
from merchant_insights.errors import PrecomputeQueryFailure
from merchant_insights.infrastructure.activity_store import ActivityStore
from merchant_insights.utils.logging import get_logger
from merchant_insights.utils.profiler import profile_block

log = get_logger(__name__)

DEFAULT_SLOW_QUERY_THRESHOLD_MS = 100


@dataclass
class PrecomputeReport:
    attempt: int
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    timings_ms: Dict[str, int] = field(default_factory=dict)
    duration_ms: int = 0
    peak_rss_mb: int | None = None

    @property
    def complete(self) -> bool:
        return not self.failed

    def as_dict(self) -> Dict[str, Any]:
        return {
            "attempt": self.attempt,
            "succeeded": list(self.succeeded),
            "failed": dict(self.failed),
            "duration_ms": self.duration_ms,
            "peak_rss_mb": self.peak_rss_mb,
        }


class AnalyticsPrecomputer:
    """
    Runs the projection queries against the store.

    Parameters
    ----------
    store : ActivityStore
        Source of the aggregate queries.
    cache : AnalyticsCache
        Receives each projection as it completes.
    slow_query_threshold_ms : int
        Queries slower than this are logged at WARNING.
    queries : sequence of ProjectionQuery
        Projections to compute.
    """

    def __init__(
        self,
        store: ActivityStore,
        cache: AnalyticsCache,
        slow_query_threshold_ms: int = DEFAULT_SLOW_QUERY_THRESHOLD_MS,
        queries: Sequence[ProjectionQuery] = PROJECTION_QUERIES,
    ) -> None:
        self._store = store
        self._cache = cache
        self.slow_query_threshold_ms = slow_query_threshold_ms
        self._queries = tuple(queries)
        self.attempts = 0

    async def precompute(self) -> PrecomputeReport:
        self.attempts += 1
        report = PrecomputeReport(attempt=self.attempts)
        log.info(f"Pre-computing analytics (attempt {self.attempts})...")

        with profile_block("precompute") as stats:
            outcomes = await asyncio.gather(
                *(self._compute(query, report) for query in self._queries),
                return_exceptions=True,
            )

        for query, outcome in zip(self._queries, outcomes):
            if not isinstance(outcome, BaseException):
                report.succeeded.append(query.slot)
                continue
            if not isinstance(outcome, Exception):
                raise outcome
            failure = PrecomputeQueryFailure(query.label, outcome)
            report.failed[query.slot] = str(outcome)
            log.error(
                f"Analytics query failed: {failure}",
                extra={"projection": query.label, "error_type": type(outcome).__name__},
            )

        self._cache.mark_ready()
        report.duration_ms = stats.duration_ms
        report.peak_rss_mb = stats.peak_rss_mb

        if report.failed:
            log.warning(
                f"Analytics ready with {len(report.failed)} failed projection(s): "
                f"{', '.join(report.failed)}",
                extra=report.as_dict(),
            )
        else:
            log.info(
                f"Analytics pre-computed in {report.duration_ms}ms",
                extra=report.as_dict(),
            )
        return report

    async def _compute(self, query: ProjectionQuery, report: PrecomputeReport) -> None:
        started = time.perf_counter()
        rows = await self._store.fetch_all(query.sql)
        elapsed_ms = int(round((time.perf_counter() - started) * 1000))
        report.timings_ms[query.label] = elapsed_ms

        if elapsed_ms > self.slow_query_threshold_ms:
            log.warning(
                f"Slow query [{query.label}]: {elapsed_ms}ms",
                extra={"projection": query.label, "duration_ms": elapsed_ms},
            )
        else:
            log.info(
                f"Query [{query.label}]: {elapsed_ms}ms",
                extra={"projection": query.label, "duration_ms": elapsed_ms},
            )

        self._cache.update(query.slot, query.shape(rows))


__all__ = ["AnalyticsPrecomputer", "DEFAULT_SLOW_QUERY_THRESHOLD_MS", "PrecomputeReport"]
