"""In-Memory Repository Implementations

Stored aggregates are copied on the way in and out so callers never share
state with the store, and each key has its own asyncio.Lock for the
compare-and-swap and read-modify-write operations.
"""
import asyncio
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple, Type

from domain.entities import Host, Listing, Reservation
from domain.enums import ListingStatus, ReservationStatus
from domain.ledgers import HostEarnings, LedgerAccount, PlatformAnalytics, PromoterAnalytics
from domain.repositories import (
    HostEarningsRepository, HostRepository, LedgerRepository, ListingRepository,
    PlatformAnalyticsRepository, PromoterAnalyticsRepository, ReservationRepository,
)
from domain.value_objects import StepOutcome


class InMemoryListingRepository(ListingRepository):
    """In-memory implementation of ListingRepository"""

    def __init__(self):
        self._storage: Dict[str, Listing] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def save(self, listing: Listing) -> Listing:
        """Save listing to memory"""
        self._storage[listing.listing_id] = listing.model_copy(deep=True)
        return listing

    async def find_by_id(self, listing_id: str) -> Optional[Listing]:
        """Find listing by ID"""
        listing = self._storage.get(listing_id)
        return listing.model_copy(deep=True) if listing else None

    async def find_by_host(self, host_id: str) -> List[Listing]:
        """Find listings owned by a host"""
        return [l.model_copy(deep=True) for l in self._storage.values() if l.host_id == host_id]

    async def find_by_status(self, *statuses: ListingStatus) -> List[Listing]:
        """Find listings in any of the given statuses"""
        wanted = set(statuses)
        return [l.model_copy(deep=True) for l in self._storage.values() if l.status in wanted]

    async def update_if_status(self, listing: Listing, expected: ListingStatus) -> bool:
        """Compare-and-swap on the stored status"""
        async with self._locks[listing.listing_id]:
            current = self._storage.get(listing.listing_id)
            if current is None:
                raise ValueError("Listing not found")
            if current.status != expected:
                return False
            # punti belongs to update_punti; a stale snapshot must not roll it back
            updated = listing.model_copy(deep=True)
            updated.punti = current.punti
            updated.version = current.version + 1
            self._storage[listing.listing_id] = updated
            listing.punti = updated.punti
            listing.version = updated.version
            return True

    async def update_punti(self, listing_id: str, compute: Callable[[int], int]) -> Optional[Tuple[int, int]]:
        """Atomic read-modify-write of punti"""
        async with self._locks[listing_id]:
            current = self._storage.get(listing_id)
            if current is None:
                return None
            before = current.punti
            current.punti = compute(before)
            current.version += 1
            return before, current.punti


class InMemoryHostRepository(HostRepository):
    """In-memory implementation of HostRepository"""

    def __init__(self):
        self._storage: Dict[str, Host] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def save(self, host: Host) -> Host:
        """Save host to memory"""
        self._storage[host.host_id] = host.model_copy(deep=True)
        return host

    async def find_by_id(self, host_id: str) -> Optional[Host]:
        """Find host by ID"""
        host = self._storage.get(host_id)
        return host.model_copy(deep=True) if host else None

    async def update(self, host_id: str, mutate: Callable[[Host], None]) -> Optional[Host]:
        """Atomic read-modify-write of one host"""
        async with self._locks[host_id]:
            current = self._storage.get(host_id)
            if current is None:
                return None
            updated = current.model_copy(deep=True)
            mutate(updated)
            self._storage[host_id] = updated
            return updated.model_copy(deep=True)


class InMemoryReservationRepository(ReservationRepository):
    """In-memory implementation of ReservationRepository"""

    def __init__(self):
        self._storage: Dict[str, Reservation] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def save(self, reservation: Reservation) -> Reservation:
        """Save reservation to memory"""
        self._storage[reservation.reservation_id] = reservation.model_copy(deep=True)
        return reservation

    async def find_by_id(self, reservation_id: str) -> Optional[Reservation]:
        """Find reservation by ID"""
        reservation = self._storage.get(reservation_id)
        return reservation.model_copy(deep=True) if reservation else None

    async def find_by_listing_and_date(self, listing_id: str, start_date: date) -> List[Reservation]:
        """Find reservations for a listing on a date"""
        return [
            r.model_copy(deep=True) for r in self._storage.values()
            if r.listing_id == listing_id and r.start_date == start_date
        ]

    async def update_if_status(self, reservation: Reservation, expected: ReservationStatus) -> bool:
        """Compare-and-swap on the stored status"""
        async with self._locks[reservation.reservation_id]:
            current = self._storage.get(reservation.reservation_id)
            if current is None:
                raise ValueError("Reservation not found")
            if current.status != expected:
                return False
            self._storage[reservation.reservation_id] = reservation.model_copy(deep=True)
            return True

    async def record_steps(self, reservation_id: str, outcomes: List[StepOutcome]) -> Optional[Reservation]:
        """Merge step outcomes into the stored cancellation record"""
        async with self._locks[reservation_id]:
            current = self._storage.get(reservation_id)
            if current is None:
                return None
            for outcome in outcomes:
                current.record_step(outcome)
            return current.model_copy(deep=True)


class _InMemoryLedgerRepository(LedgerRepository):
    """Shared in-memory ledger store, one lock per account"""

    account_class: Type[LedgerAccount] = LedgerAccount

    def __init__(self):
        self._storage: Dict[str, LedgerAccount] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def get(self, account_id: str) -> Optional[LedgerAccount]:
        """Get an account"""
        account = self._storage.get(account_id)
        return account.model_copy(deep=True) if account else None

    async def apply_delta(
        self,
        account_id: str,
        entry_key: str,
        on_date: date,
        bookings_delta: int,
        revenue_delta: Decimal,
        fee_delta: Decimal = Decimal("0"),
    ) -> LedgerAccount:
        """Atomic read-modify-write of one account"""
        async with self._locks[account_id]:
            account = self._storage.get(account_id)
            if account is None:
                account = self.account_class(account_id=account_id)
                self._storage[account_id] = account
            account.apply(entry_key, on_date, bookings_delta, revenue_delta, fee_delta)
            return account.model_copy(deep=True)


class InMemoryPlatformAnalyticsRepository(_InMemoryLedgerRepository, PlatformAnalyticsRepository):
    """In-memory implementation of PlatformAnalyticsRepository"""
    account_class = PlatformAnalytics


class InMemoryHostEarningsRepository(_InMemoryLedgerRepository, HostEarningsRepository):
    """In-memory implementation of HostEarningsRepository"""
    account_class = HostEarnings


class InMemoryPromoterAnalyticsRepository(_InMemoryLedgerRepository, PromoterAnalyticsRepository):
    """In-memory implementation of PromoterAnalyticsRepository"""
    account_class = PromoterAnalytics
