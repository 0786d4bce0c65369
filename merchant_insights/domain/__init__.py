"""
Domain package for Merchant Insights.

Exports the core domain models used across ingestion and analytics.
Keep this package focused on data definitions and validation concerns.
"""

from merchant_insights.domain.models import (
    ActivityRecord,
    Channel,
    FailureRate,
    KycFunnel,
    MerchantTier,
    Product,
    Status,
    TopMerchant,
)

__all__ = [
    "ActivityRecord",
    "Channel",
    "FailureRate",
    "KycFunnel",
    "MerchantTier",
    "Product",
    "Status",
    "TopMerchant",
]
