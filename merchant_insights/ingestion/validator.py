"""
Row validation and sanitisation for activity CSV rows.

`RowValidator.validate` turns one raw CSV row into either a clean
`ActivityRecord` or a `SkipReason`. Rows with missing required fields, a
malformed event id, or an unknown product/status are skipped. Everything
else is repaired in place (unknown channel/tier become null, negative amounts
are clamped, unparsable timestamps become null) and counted as a warning.

Validation runs in worker threads, so the counters live in a lock-guarded
`ValidationStats`.
"""

from __future__ import annotations

import re
import threading
from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Dict, Mapping, Optional, Union

from pydantic import ValidationError

from merchant_insights.domain.models import (
    ActivityRecord,
    Channel,
    MerchantTier,
    Product,
    Status,
)
from merchant_insights.utils.logging import get_logger

log = get_logger(__name__)

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
MERCHANT_ID_PATTERN = re.compile(r"^MRC-[0-9]{6}$")
REQUIRED_FIELDS = ("event_id", "merchant_id", "product", "event_type", "status")

_BOM = "\ufeff"
_CENT = Decimal("0.01")
_ZERO = Decimal("0.00")
# NUMERIC(18, 2) upper bound
_AMOUNT_LIMIT = Decimal(10) ** 16


class SkipReason(str, Enum):
    """Why a row was not persisted."""

    MISSING_FIELDS = "missing_fields"
    INVALID_UUID = "invalid_uuid"
    INVALID_PRODUCT = "invalid_product"
    INVALID_STATUS = "invalid_status"
    # A row that passed every check but still failed model construction.
    MALFORMED = "malformed"


@dataclass
class _Counters:
    total: int = 0
    missing_fields: int = 0
    invalid_uuid: int = 0
    invalid_merchant_id: int = 0
    invalid_product: int = 0
    invalid_status: int = 0
    invalid_channel: int = 0
    invalid_tier: int = 0
    negative_amount: int = 0
    suspicious_date: int = 0
    malformed: int = 0


class ValidationStats:
    """Process-lifetime validation counters, safe to bump from several threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters = _Counters()

    def increment(self, name: str) -> None:
        with self._lock:
            setattr(self._counters, name, getattr(self._counters, name) + 1)

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return asdict(self._counters)

    def reset(self) -> None:
        with self._lock:
            self._counters = _Counters()

    def __getattr__(self, name: str) -> int:
        if name in _COUNTER_NAMES:
            return self.snapshot()[name]
        raise AttributeError(name)


_COUNTER_NAMES = frozenset(f.name for f in fields(_Counters))


def normalize_keys(raw: Mapping[Optional[str], object]) -> Dict[str, str]:
    """Lower-case and trim field names, drop a BOM artifact, trim values."""
    normalized: Dict[str, str] = {}
    for key, value in raw.items():
        if key is None:
            # csv.DictReader files surplus columns under the None key
            continue
        name = key.strip().lower().lstrip(_BOM).strip()
        normalized[name] = value.strip() if isinstance(value, str) else ""
    return normalized


def parse_amount(value: str) -> Optional[Decimal]:
    """
    Parse an amount with optional thousands separators, rounded half-up to cents.

    None when unparsable or when the rounded value does not fit the column.
    """
    try:
        parsed = Decimal(value.replace(",", ""))
    except InvalidOperation:
        return None
    if not parsed.is_finite() or abs(parsed) >= _AMOUNT_LIMIT:
        return None
    rounded = parsed.quantize(_CENT, rounding=ROUND_HALF_UP)
    if abs(rounded) >= _AMOUNT_LIMIT:
        return None
    return rounded


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into an aware UTC datetime; None when unparsable."""
    try:
        parsed = datetime.fromisoformat(value)
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        # offsets that shift past year 1 or 9999 cannot be represented in UTC
        return None


class RowValidator:
    """
    Validates and sanitises raw CSV rows.

    Parameters
    ----------
    expected_year : int
        Timestamps outside this year are kept but flagged as suspicious.
    stats : ValidationStats | None
        Counter sink; a fresh one is created when omitted.
    """

    def __init__(self, expected_year: int, stats: Optional[ValidationStats] = None) -> None:
        self.expected_year = expected_year
        self.stats = stats or ValidationStats()

    def validate(
        self, raw: Mapping[Optional[str], object], row_number: int
    ) -> Union[ActivityRecord, SkipReason]:
        """
        Return a clean record, or the reason the row must be skipped.

        Never raises for malformed input.
        """
        self.stats.increment("total")
        row = normalize_keys(raw)

        if any(not row.get(name) for name in REQUIRED_FIELDS):
            return self._skip(SkipReason.MISSING_FIELDS, row_number, "missing required field(s)")

        event_id = row["event_id"]
        if not UUID_PATTERN.match(event_id):
            return self._skip(SkipReason.INVALID_UUID, row_number, f"invalid UUID {event_id!r}")

        try:
            product = Product(row["product"])
        except ValueError:
            return self._skip(
                SkipReason.INVALID_PRODUCT, row_number, f"unknown product {row['product']!r}"
            )

        try:
            status = Status(row["status"])
        except ValueError:
            return self._skip(
                SkipReason.INVALID_STATUS, row_number, f"unknown status {row['status']!r}"
            )

        merchant_id = row["merchant_id"]
        if not MERCHANT_ID_PATTERN.match(merchant_id):
            self._warn(
                "invalid_merchant_id",
                row_number,
                f"merchant_id {merchant_id!r} is not MRC-######",
            )

        channel = self._optional_enum(Channel, row.get("channel"), "invalid_channel", row_number)
        tier = self._optional_enum(
            MerchantTier, row.get("merchant_tier"), "invalid_tier", row_number
        )

        amount = parse_amount(row.get("amount", "")) or _ZERO
        if amount < 0:
            self._warn("negative_amount", row_number, f"negative amount {amount} clamped to 0")
            amount = _ZERO

        timestamp: Optional[datetime] = None
        raw_timestamp = row.get("event_timestamp", "")
        if raw_timestamp:
            timestamp = parse_timestamp(raw_timestamp)
            if timestamp is not None and timestamp.year != self.expected_year:
                self._warn(
                    "suspicious_date",
                    row_number,
                    f"timestamp {raw_timestamp!r} outside {self.expected_year}, importing anyway",
                )

        try:
            return ActivityRecord(
                event_id=event_id.lower(),
                merchant_id=merchant_id,
                event_timestamp=timestamp,
                product=product,
                event_type=row["event_type"],
                amount=amount,
                status=status,
                channel=channel,
                region=row.get("region") or None,
                merchant_tier=tier,
            )
        except (ValidationError, InvalidOperation) as exc:
            return self._skip(SkipReason.MALFORMED, row_number, f"could not build record: {exc}")

    def _optional_enum(self, enum_cls, value: Optional[str], counter: str, row_number: int):
        if not value:
            return None
        try:
            return enum_cls(value)
        except ValueError:
            field_name = counter.split("_", 1)[1]
            self._warn(counter, row_number, f"unknown {field_name} {value!r} stored as null")
            return None

    def _skip(self, reason: SkipReason, row_number: int, detail: str) -> SkipReason:
        self.stats.increment(reason.value)
        log.debug("Row %d: %s, skipping", row_number, detail)
        return reason

    def _warn(self, counter: str, row_number: int, detail: str) -> None:
        self.stats.increment(counter)
        log.debug("Row %d: %s", row_number, detail)


__all__ = [
    "MERCHANT_ID_PATTERN",
    "REQUIRED_FIELDS",
    "RowValidator",
    "SkipReason",
    "UUID_PATTERN",
    "ValidationStats",
    "normalize_keys",
    "parse_amount",
    "parse_timestamp",
]
