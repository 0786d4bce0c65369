"""
In-memory cache of the five precomputed projections.

The cache holds one immutable `AnalyticsSnapshot`. Each projection update
builds a new snapshot with only its own slot replaced and swaps it in under a
lock, so a reader always sees a consistent object. The ready flag flips once
and never reverts.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, List, Optional

from merchant_insights.analytics.queries import empty_kyc_funnel
from merchant_insights.domain.models import FailureRate, KycFunnel, TopMerchant


@dataclass(frozen=True)
class AnalyticsSnapshot:
    top_merchant: Optional[TopMerchant] = None
    monthly_active_merchants: Dict[str, int] = field(default_factory=dict)
    product_adoption: Dict[str, int] = field(default_factory=dict)
    kyc_funnel: KycFunnel = field(default_factory=empty_kyc_funnel)
    failure_rates: List[FailureRate] = field(default_factory=list)


SLOTS = frozenset(f.name for f in fields(AnalyticsSnapshot))


class AnalyticsCache:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot = AnalyticsSnapshot()
        self._ready = False

    def update(self, slot: str, value: Any) -> None:
        """Replace a single projection; the other slots keep their values."""
        if slot not in SLOTS:
            raise KeyError(f"Unknown analytics slot: {slot}")
        with self._lock:
            self._snapshot = replace(self._snapshot, **{slot: value})

    def mark_ready(self) -> None:
        with self._lock:
            self._ready = True

    @property
    def ready(self) -> bool:
        with self._lock:
            return self._ready

    @property
    def snapshot(self) -> AnalyticsSnapshot:
        with self._lock:
            return self._snapshot


__all__ = ["AnalyticsCache", "AnalyticsSnapshot", "SLOTS"]
