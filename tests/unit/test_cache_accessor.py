from __future__ import annotations

import pytest

from merchant_insights.accessor import InsightsReader
from merchant_insights.analytics.cache import AnalyticsCache
from merchant_insights.errors import AnalyticsNotReadyError
from merchant_insights.ingestion.scheduler import ImportProgress


@pytest.fixture
def cache() -> AnalyticsCache:
    return AnalyticsCache()


@pytest.fixture
def progress() -> ImportProgress:
    return ImportProgress()


@pytest.fixture
def reader(progress, cache) -> InsightsReader:
    return InsightsReader(progress, cache)


@pytest.mark.parametrize(
    "getter",
    [
        "get_top_merchant",
        "get_monthly_active_merchants",
        "get_product_adoption",
        "get_kyc_funnel",
        "get_failure_rates",
    ],
)
def test_analytics_reads_are_gated_until_ready(reader, getter):
    with pytest.raises(AnalyticsNotReadyError, match="try again"):
        getattr(reader, getter)()


def test_ready_defaults_are_empty(reader, cache):
    cache.mark_ready()

    assert reader.get_top_merchant() is None
    assert reader.get_monthly_active_merchants() == {}
    assert reader.get_product_adoption() == {}
    assert reader.get_kyc_funnel() == {
        "documents_submitted": 0,
        "verifications_completed": 0,
        "tier_upgrades": 0,
    }
    assert reader.get_failure_rates() == []


def test_update_replaces_only_one_slot(cache):
    cache.update("product_adoption", {"POS": 3})
    before = cache.snapshot
    cache.update("top_merchant", {"merchant_id": "MRC-000001", "total_volume": 10.0})

    assert cache.snapshot.product_adoption == {"POS": 3}
    assert before.top_merchant is None
    assert cache.snapshot is not before


def test_unknown_slot_is_rejected(cache):
    with pytest.raises(KeyError):
        cache.update("revenue", 1)


def test_ready_never_reverts(cache):
    cache.mark_ready()
    cache.update("product_adoption", {})
    cache.mark_ready()

    assert cache.ready


def test_getters_return_copies(reader, cache):
    cache.update("product_adoption", {"POS": 3})
    cache.update("failure_rates", [{"product": "POS", "failure_rate": 1.5}])
    cache.mark_ready()

    reader.get_product_adoption()["POS"] = 99
    reader.get_failure_rates()[0]["failure_rate"] = 0.0

    assert reader.get_product_adoption() == {"POS": 3}
    assert reader.get_failure_rates() == [{"product": "POS", "failure_rate": 1.5}]


def test_import_status_is_always_readable(reader, progress):
    progress.add(4, 2)

    assert reader.total_imported() == 4
    assert reader.total_skipped() == 2
    assert not reader.is_import_complete()
    assert not reader.is_analytics_ready()


def test_health_reports_import_and_analytics_state(reader, progress, cache):
    progress.add(10, 1)
    progress.mark_complete()
    cache.mark_ready()

    assert reader.health() == {
        "status": "ok",
        "import": {"complete": True, "total_imported": 10, "total_skipped": 1, "error": None},
        "analytics": {"ready": True},
    }
