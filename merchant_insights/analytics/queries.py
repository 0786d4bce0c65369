"""
The five analytics projections: SQL plus the shaping of result rows.

Each `ProjectionQuery` is independent of the others. `slot` names the cache
slot it fills; `label` is what shows up in timing logs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from merchant_insights.domain.models import FailureRate, KycFunnel, TopMerchant
from merchant_insights.infrastructure.schema import ACTIVITIES_TABLE

Rows = List[Dict[str, Any]]

KYC_STAGES: Dict[str, str] = {
    "DOCUMENT_SUBMITTED": "documents_submitted",
    "VERIFICATION_COMPLETED": "verifications_completed",
    "TIER_UPGRADE": "tier_upgrades",
}


def empty_kyc_funnel() -> KycFunnel:
    return KycFunnel(documents_submitted=0, verifications_completed=0, tier_upgrades=0)


TOP_MERCHANT_SQL = f"""
SELECT merchant_id, ROUND(SUM(amount), 2) AS total_volume
FROM {ACTIVITIES_TABLE}
WHERE status = 'SUCCESS'
GROUP BY merchant_id
ORDER BY total_volume DESC, merchant_id ASC
LIMIT 1
"""

MONTHLY_ACTIVE_MERCHANTS_SQL = f"""
SELECT
    to_char(event_timestamp AT TIME ZONE 'UTC', 'YYYY-MM') AS month,
    COUNT(DISTINCT merchant_id)::int AS merchant_count
FROM {ACTIVITIES_TABLE}
WHERE status = 'SUCCESS'
  AND event_timestamp IS NOT NULL
GROUP BY month
ORDER BY month
"""

PRODUCT_ADOPTION_SQL = f"""
SELECT product, COUNT(DISTINCT merchant_id)::int AS merchant_count
FROM {ACTIVITIES_TABLE}
GROUP BY product
ORDER BY merchant_count DESC, product ASC
"""

KYC_FUNNEL_SQL = f"""
SELECT event_type, COUNT(DISTINCT merchant_id)::int AS merchant_count
FROM {ACTIVITIES_TABLE}
WHERE product = 'KYC'
  AND status = 'SUCCESS'
GROUP BY event_type
"""

# PENDING rows are excluded from numerator and denominator alike.
FAILURE_RATES_SQL = f"""
SELECT
    product,
    ROUND(
        COUNT(*) FILTER (WHERE status = 'FAILED') * 100.0
        / NULLIF(COUNT(*), 0),
        1
    ) AS failure_rate
FROM {ACTIVITIES_TABLE}
WHERE status IN ('SUCCESS', 'FAILED')
GROUP BY product
ORDER BY failure_rate DESC, product ASC
"""


def shape_top_merchant(rows: Rows) -> Optional[TopMerchant]:
    if not rows or rows[0].get("total_volume") is None:
        return None
    row = rows[0]
    return TopMerchant(
        merchant_id=row["merchant_id"],
        total_volume=round(float(row["total_volume"]), 2),
    )


def shape_monthly_active_merchants(rows: Rows) -> Dict[str, int]:
    ordered = sorted(rows, key=lambda row: row["month"])
    return {row["month"]: int(row["merchant_count"]) for row in ordered}


def shape_product_adoption(rows: Rows) -> Dict[str, int]:
    ordered = sorted(rows, key=lambda row: (-int(row["merchant_count"]), row["product"]))
    return {row["product"]: int(row["merchant_count"]) for row in ordered}


def shape_kyc_funnel(rows: Rows) -> KycFunnel:
    funnel = empty_kyc_funnel()
    for row in rows:
        stage = KYC_STAGES.get(row["event_type"])
        if stage is not None:
            funnel[stage] = int(row["merchant_count"])  # type: ignore[literal-required]
    return funnel


def shape_failure_rates(rows: Rows) -> List[FailureRate]:
    rates = [
        FailureRate(product=row["product"], failure_rate=round(float(row["failure_rate"]), 1))
        for row in rows
        if row.get("failure_rate") is not None
    ]
    rates.sort(key=lambda entry: (-entry["failure_rate"], entry["product"]))
    return rates


@dataclass(frozen=True)
class ProjectionQuery:
    slot: str
    label: str
    sql: str
    shape: Callable[[Rows], Any]


TOP_MERCHANT = ProjectionQuery(
    "top_merchant", "top-merchant", TOP_MERCHANT_SQL, shape_top_merchant
)
MONTHLY_ACTIVE_MERCHANTS = ProjectionQuery(
    "monthly_active_merchants",
    "monthly-active-merchants",
    MONTHLY_ACTIVE_MERCHANTS_SQL,
    shape_monthly_active_merchants,
)
PRODUCT_ADOPTION = ProjectionQuery(
    "product_adoption", "product-adoption", PRODUCT_ADOPTION_SQL, shape_product_adoption
)
KYC_FUNNEL = ProjectionQuery("kyc_funnel", "kyc-funnel", KYC_FUNNEL_SQL, shape_kyc_funnel)
FAILURE_RATES = ProjectionQuery(
    "failure_rates", "failure-rates", FAILURE_RATES_SQL, shape_failure_rates
)

PROJECTION_QUERIES: Tuple[ProjectionQuery, ...] = (
    TOP_MERCHANT,
    MONTHLY_ACTIVE_MERCHANTS,
    PRODUCT_ADOPTION,
    KYC_FUNNEL,
    FAILURE_RATES,
)


__all__ = [
    "FAILURE_RATES",
    "KYC_FUNNEL",
    "KYC_STAGES",
    "MONTHLY_ACTIVE_MERCHANTS",
    "PRODUCT_ADOPTION",
    "PROJECTION_QUERIES",
    "ProjectionQuery",
    "TOP_MERCHANT",
    "empty_kyc_funnel",
    "shape_failure_rates",
    "shape_kyc_funnel",
    "shape_monthly_active_merchants",
    "shape_product_adoption",
    "shape_top_merchant",
]
