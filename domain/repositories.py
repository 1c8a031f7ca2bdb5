"""Domain Repository Interfaces"""
from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from domain.entities import Host, Listing, Reservation
from domain.enums import ListingStatus, ReservationStatus
from domain.ledgers import LedgerAccount
from domain.value_objects import StepOutcome


class ListingRepository(ABC):
    """Repository interface for Listing Aggregate"""

    @abstractmethod
    async def save(self, listing: Listing) -> Listing:
        """Save a new listing"""
        pass

    @abstractmethod
    async def find_by_id(self, listing_id: str) -> Optional[Listing]:
        """Find listing by ID"""
        pass

    @abstractmethod
    async def find_by_host(self, host_id: str) -> List[Listing]:
        """Find listings owned by a host"""
        pass

    @abstractmethod
    async def find_by_status(self, *statuses: ListingStatus) -> List[Listing]:
        """Find listings in any of the given statuses"""
        pass

    @abstractmethod
    async def update_if_status(self, listing: Listing, expected: ListingStatus) -> bool:
        """Persist lifecycle fields only if the stored status still equals ``expected``

        The stored punti is kept; it only changes through ``update_punti``.
        """
        pass

    @abstractmethod
    async def update_punti(self, listing_id: str, compute: Callable[[int], int]) -> Optional[Tuple[int, int]]:
        """Atomically replace punti with compute(current); returns (before, after)"""
        pass


class HostRepository(ABC):
    """Repository interface for Host accounts"""

    @abstractmethod
    async def save(self, host: Host) -> Host:
        """Save host"""
        pass

    @abstractmethod
    async def find_by_id(self, host_id: str) -> Optional[Host]:
        """Find host by ID"""
        pass

    @abstractmethod
    async def update(self, host_id: str, mutate: Callable[[Host], None]) -> Optional[Host]:
        """Atomically apply mutate to the stored host; None if missing"""
        pass


class ReservationRepository(ABC):
    """Repository interface for Reservation Aggregate"""

    @abstractmethod
    async def save(self, reservation: Reservation) -> Reservation:
        """Save reservation"""
        pass

    @abstractmethod
    async def find_by_id(self, reservation_id: str) -> Optional[Reservation]:
        """Find reservation by ID"""
        pass

    @abstractmethod
    async def find_by_listing_and_date(self, listing_id: str, start_date: date) -> List[Reservation]:
        """Find reservations for a listing on a date"""
        pass

    @abstractmethod
    async def update_if_status(self, reservation: Reservation, expected: ReservationStatus) -> bool:
        """Persist only if the stored status still equals ``expected``"""
        pass

    @abstractmethod
    async def record_steps(self, reservation_id: str, outcomes: List[StepOutcome]) -> Optional[Reservation]:
        """Atomically merge saga step outcomes into the stored record; None if missing"""
        pass


class LedgerRepository(ABC):
    """Repository interface for one family of aggregate ledgers"""

    @abstractmethod
    async def get(self, account_id: str) -> Optional[LedgerAccount]:
        """Get an account"""
        pass

    @abstractmethod
    async def apply_delta(
        self,
        account_id: str,
        entry_key: str,
        on_date: date,
        bookings_delta: int,
        revenue_delta: Decimal,
        fee_delta: Decimal = Decimal("0"),
    ) -> LedgerAccount:
        """Atomic read-modify-write of one account, idempotent per entry key"""
        pass


class PlatformAnalyticsRepository(LedgerRepository):
    """Ledger store for PlatformAnalytics"""


class HostEarningsRepository(LedgerRepository):
    """Ledger store for HostEarnings"""


class PromoterAnalyticsRepository(LedgerRepository):
    """Ledger store for PromoterAnalytics"""
