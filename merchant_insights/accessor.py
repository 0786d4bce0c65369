"""
Read-only view over import progress and the analytics cache.

This is the surface a serving layer binds to. Import status is always
readable; the analytics getters raise `AnalyticsNotReadyError` until the
first precompute pass has settled. Getters return copies so callers cannot
mutate the cached projections.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from merchant_insights.analytics.cache import AnalyticsCache, AnalyticsSnapshot
from merchant_insights.domain.models import FailureRate, KycFunnel, TopMerchant
from merchant_insights.errors import AnalyticsNotReadyError
from merchant_insights.ingestion.scheduler import ImportProgress


class InsightsReader:
    def __init__(self, progress: ImportProgress, cache: AnalyticsCache) -> None:
        self._progress = progress
        self._cache = cache

    def is_import_complete(self) -> bool:
        return self._progress.complete

    def total_imported(self) -> int:
        return self._progress.total_imported

    def total_skipped(self) -> int:
        return self._progress.total_skipped

    def is_analytics_ready(self) -> bool:
        return self._cache.ready

    def _snapshot(self) -> AnalyticsSnapshot:
        if not self._cache.ready:
            raise AnalyticsNotReadyError()
        return self._cache.snapshot

    def get_top_merchant(self) -> Optional[TopMerchant]:
        top = self._snapshot().top_merchant
        return TopMerchant(**top) if top is not None else None

    def get_monthly_active_merchants(self) -> Dict[str, int]:
        return dict(self._snapshot().monthly_active_merchants)

    def get_product_adoption(self) -> Dict[str, int]:
        return dict(self._snapshot().product_adoption)

    def get_kyc_funnel(self) -> KycFunnel:
        return KycFunnel(**self._snapshot().kyc_funnel)

    def get_failure_rates(self) -> List[FailureRate]:
        return [FailureRate(**entry) for entry in self._snapshot().failure_rates]

    def health(self) -> Dict[str, Any]:
        """Status payload for a health endpoint; never raises."""
        return {
            "status": "ok",
            "import": {
                "complete": self._progress.complete,
                "total_imported": self._progress.total_imported,
                "total_skipped": self._progress.total_skipped,
                "error": self._progress.error,
            },
            "analytics": {"ready": self._cache.ready},
        }


__all__ = ["InsightsReader"]
