"""Aggregate ledgers derived from bookings.

Each account is additive at booking time and compensated at cancellation.
Deltas carry an entry key so the same booking or cancellation is applied to
an account at most once.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Set, Tuple

from pydantic import BaseModel, Field

PLATFORM_ACCOUNT_ID = "platform"
ZERO = Decimal("0")


def bucket_keys(day: date) -> Tuple[str, str, str]:
    """Daily, monthly and yearly bucket keys for a date"""
    return day.isoformat(), day.strftime("%Y-%m"), day.strftime("%Y")


def booked_entry_key(reservation_id: str) -> str:
    return f"{reservation_id}:booked"


def cancelled_entry_key(reservation_id: str) -> str:
    return f"{reservation_id}:cancelled"


class LedgerBucket(BaseModel):
    bookings: int = 0
    revenue: Decimal = ZERO
    fees: Decimal = ZERO

    def add(self, bookings: int, revenue: Decimal, fees: Decimal) -> None:
        # Totals never go negative
        self.bookings = max(0, self.bookings + bookings)
        self.revenue = max(ZERO, self.revenue + revenue)
        self.fees = max(ZERO, self.fees + fees)


class LedgerAccount(BaseModel):
    """Running totals plus daily / monthly / yearly series"""
    account_id: str
    totals: LedgerBucket = Field(default_factory=LedgerBucket)
    daily: Dict[str, LedgerBucket] = Field(default_factory=dict)
    monthly: Dict[str, LedgerBucket] = Field(default_factory=dict)
    yearly: Dict[str, LedgerBucket] = Field(default_factory=dict)
    applied_entries: Set[str] = Field(default_factory=set)
    last_updated: datetime = Field(default_factory=datetime.utcnow)
    version: int = 1

    class Config:
        from_attributes = True

    @property
    def total_bookings(self) -> int:
        return self.totals.bookings

    @property
    def total_revenue(self) -> Decimal:
        return self.totals.revenue

    @property
    def total_fees(self) -> Decimal:
        return self.totals.fees

    def apply(
        self,
        entry_key: str,
        on_date: date,
        bookings_delta: int,
        revenue_delta: Decimal,
        fee_delta: Decimal = ZERO,
    ) -> bool:
        """Apply a delta once; returns False if the entry was already applied"""
        if entry_key in self.applied_entries:
            return False

        day_key, month_key, year_key = bucket_keys(on_date)
        for series, key in ((self.daily, day_key), (self.monthly, month_key), (self.yearly, year_key)):
            series.setdefault(key, LedgerBucket()).add(bookings_delta, revenue_delta, fee_delta)
        self.totals.add(bookings_delta, revenue_delta, fee_delta)

        self.applied_entries.add(entry_key)
        self.last_updated = datetime.utcnow()
        self.version += 1
        return True

    def bucket_for(self, on_date: date) -> LedgerBucket:
        return self.daily.get(on_date.isoformat(), LedgerBucket())


class PlatformAnalytics(LedgerAccount):
    """Platform-wide revenue, fee and booking series"""
    account_id: str = PLATFORM_ACCOUNT_ID


class HostEarnings(LedgerAccount):
    """Per-host running earnings, keyed by host id"""


class PromoterAnalytics(LedgerAccount):
    """Per-referral running totals, keyed by referral id"""
