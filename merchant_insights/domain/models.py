"""
Domain models for Merchant Insights.

Defines the activity record schema aligned with the `activities` table in
`merchant_insights.infrastructure.schema`, the enumerated vocabularies the
validator enforces, and the result shapes of the five analytics projections.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, TypedDict

from pydantic import BaseModel, Field


class Product(str, Enum):
    POS = "POS"
    AIRTIME = "AIRTIME"
    BILLS = "BILLS"
    CARD_PAYMENT = "CARD_PAYMENT"
    SAVINGS = "SAVINGS"
    MONIEBOOK = "MONIEBOOK"
    KYC = "KYC"


class Status(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PENDING = "PENDING"


class Channel(str, Enum):
    POS = "POS"
    APP = "APP"
    USSD = "USSD"
    WEB = "WEB"
    OFFLINE = "OFFLINE"


class MerchantTier(str, Enum):
    STARTER = "STARTER"
    VERIFIED = "VERIFIED"
    PREMIUM = "PREMIUM"


class ActivityRecord(BaseModel):
    """
    Representation of a single row in the `activities` table.

    Records are immutable once built; the store is append-only.
    """

    event_id: str = Field(..., description="Event UUID (primary key), lower-cased.")
    merchant_id: str = Field(..., description="Merchant identifier, usually MRC-######.")
    event_timestamp: Optional[datetime] = Field(None, description="Event time in UTC.")
    product: Product = Field(..., description="Product line the event belongs to.")
    event_type: str = Field(..., description="Free-form event type.")
    amount: Decimal = Field(Decimal("0.00"), ge=0, description="Non-negative amount, 2 dp.")
    status: Status = Field(..., description="Outcome of the event.")
    channel: Optional[Channel] = Field(None, description="Channel, None when unknown.")
    region: Optional[str] = Field(None, description="Free-form region.")
    merchant_tier: Optional[MerchantTier] = Field(None, description="Tier, None when unknown.")

    model_config = {
        "frozen": True,
        "populate_by_name": True,
        "arbitrary_types_allowed": False,
    }


class TopMerchant(TypedDict):
    merchant_id: str
    total_volume: float


class KycFunnel(TypedDict):
    documents_submitted: int
    verifications_completed: int
    tier_upgrades: int


class FailureRate(TypedDict):
    product: str
    failure_rate: float


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
