"""Application Services - Business use cases"""
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from application.notifications import CancellationNotifier
from domain.availability import AvailabilityResolver
from domain.entities import BOOKABLE_STATUSES, Host, Listing, Reservation
from domain.enums import ListingAction, ListingStatus, ReservationStatus
from domain.exceptions import (
    ActionNotPermitted, AlreadyCancelled, ListingUnavailable, SlotUnavailable, StateViolation,
    TooManyAttachments,
)
from domain.ledgers import PLATFORM_ACCOUNT_ID, booked_entry_key
from domain.loyalty import LoyaltyScoreEngine
from domain.pricing import PricingResolver, round_currency
from domain.repositories import (
    HostEarningsRepository, HostRepository, ListingRepository,
    PlatformAnalyticsRepository, PromoterAnalyticsRepository, ReservationRepository,
)
from domain.value_objects import (
    Actor, AvailabilityResult, ListingContent, ModerationAttachment, PartnerMetrics,
    PriceQuote, PuntiAdjustment, normalize_time,
)

logger = logging.getLogger(__name__)


def _require_moderator(actor: Actor, what: str) -> None:
    if not actor.is_moderator:
        raise ActionNotPermitted(f"Only moderators can {what}")


def _require_owner(listing: Listing, actor: Actor) -> None:
    if actor.actor_id != listing.host_id:
        raise ActionNotPermitted("Only the owning host can perform this action")


class LoyaltyService:
    """Service for punti and partner commission use cases"""

    def __init__(
        self,
        listing_repo: ListingRepository,
        engine: LoyaltyScoreEngine,
        host_repo: Optional[HostRepository] = None,
    ):
        self.listing_repo = listing_repo
        self.engine = engine
        self.host_repo = host_repo

    async def increase_punti(self, listing_id: str, delta: int, actor: Actor) -> Optional[PuntiAdjustment]:
        """Moderator punti increase, capped atomically per listing"""
        _require_moderator(actor, "change punti")
        adjustment = await self._update(listing_id, lambda current: self.engine.apply_increase(current, delta))
        if adjustment is not None:
            logger.info(
                "Punti for listing %s raised by %s (requested %s) to %s by %s",
                listing_id, adjustment.applied, adjustment.requested, adjustment.total, actor.actor_id,
            )
        return adjustment

    async def ensure_approval_floor(self, listing_id: str) -> Optional[PuntiAdjustment]:
        """Lift freshly approved listings to the approval floor"""
        return await self._update(listing_id, self.engine.raise_to_floor)

    async def _update(
        self,
        listing_id: str,
        adjust: Callable[[int], PuntiAdjustment],
    ) -> Optional[PuntiAdjustment]:
        # Invalid deltas raise before the store is touched
        adjust(0)

        applied: List[PuntiAdjustment] = []

        def compute(current: int) -> int:
            adjustment = adjust(current)
            applied.append(adjustment)
            return adjustment.total

        result = await self.listing_repo.update_punti(listing_id, compute)
        if result is None:
            return None
        return applied[-1]

    async def active_punti(self) -> List[int]:
        listings = await self.listing_repo.find_by_status(*BOOKABLE_STATUSES)
        return [listing.punti for listing in listings]

    async def listing_metrics(self, listing_id: str) -> Optional[PartnerMetrics]:
        listing = await self.listing_repo.find_by_id(listing_id)
        if not listing:
            return None
        return self.engine.listing_metrics(
            listing.punti, await self.active_punti(), await self._commission_override(listing.host_id)
        )

    async def host_metrics(self, host_id: str) -> PartnerMetrics:
        listings = await self.listing_repo.find_by_host(host_id)
        host_punti = [l.punti for l in listings if l.status in BOOKABLE_STATUSES]
        return self.engine.host_metrics(
            host_punti, await self.active_punti(), await self._commission_override(host_id)
        )

    async def commission_for(self, listing: Listing) -> float:
        """Rate frozen on a new booking: the host's override, else derived from punti"""
        override = await self._commission_override(listing.host_id)
        return self.engine.partner_commission(listing.punti, override)

    async def set_host_commission(self, host_id: str, actor: Actor, commission: Optional[float]) -> Optional[Host]:
        """Set or clear (None) a host's negotiated commission, clamped to the bounds"""
        if not actor.is_moderator and actor.actor_id != host_id:
            raise ActionNotPermitted("Only moderators or the host itself can set the commission")
        if self.host_repo is None:
            raise ValueError("Host commissions are not configured")

        rate = None if commission is None else self.engine.sanitize_commission(commission)

        def assign(host: Host) -> None:
            host.partner_commission = rate

        host = await self.host_repo.update(host_id, assign)
        if host is not None:
            logger.info("Host %s partner commission set to %s by %s", host_id, rate, actor.actor_id)
        return host

    async def _commission_override(self, host_id: str) -> Optional[float]:
        if self.host_repo is None:
            return None
        host = await self.host_repo.find_by_id(host_id)
        return host.partner_commission if host else None


class ListingLifecycleService:
    """Service for the listing moderation state machine"""

    def __init__(
        self,
        repository: ListingRepository,
        host_repo: HostRepository,
        loyalty_service: Optional[LoyaltyService] = None,
        max_attachments: int = 4,
    ):
        self.repository = repository
        self.host_repo = host_repo
        self.loyalty_service = loyalty_service
        self.max_attachments = max_attachments

    async def create_draft(self, host_id: str, content: ListingContent) -> Listing:
        """Create a draft listing, registering the host on first use"""
        if not await self.host_repo.find_by_id(host_id):
            await self.host_repo.save(Host(host_id=host_id))
        listing = Listing.create_draft(host_id, content)
        return await self.repository.save(listing)

    async def get_listing(self, listing_id: str) -> Optional[Listing]:
        """Get listing by ID"""
        return await self.repository.find_by_id(listing_id)

    async def get_moderation_queue(self) -> List[Listing]:
        """Listings waiting for a moderator decision"""
        return await self.repository.find_by_status(
            ListingStatus.PENDING, ListingStatus.REVISION, ListingStatus.AWAITING_REAPPROVAL
        )

    # ==================== HOST ACTIONS ====================
    async def submit(self, listing_id: str, actor: Actor) -> Optional[Listing]:
        return await self._apply(
            listing_id, actor, ListingAction.SUBMIT,
            lambda listing: listing.submit(actor.actor_id),
            owner_only=True,
        )

    async def resubmit(
        self,
        listing_id: str,
        actor: Actor,
        content: Optional[ListingContent] = None,
    ) -> Optional[Listing]:
        return await self._apply(
            listing_id, actor, ListingAction.RESUBMIT,
            lambda listing: listing.resubmit(actor.actor_id, content),
            owner_only=True,
        )

    async def stage_revision(self, listing_id: str, actor: Actor, content: ListingContent) -> Optional[Listing]:
        return await self._apply(
            listing_id, actor, ListingAction.STAGE_REVISION,
            lambda listing: listing.stage_revision(actor.actor_id, content),
            owner_only=True,
        )

    async def reactivate(self, listing_id: str, actor: Actor) -> Optional[Listing]:
        return await self._apply(
            listing_id, actor, ListingAction.REACTIVATE,
            lambda listing: listing.reactivate(actor.actor_id),
            owner_only=True,
        )

    async def deactivate(self, listing_id: str, actor: Actor) -> Optional[Tuple[Listing, bool]]:
        """Deactivate; the flag is True when a moderator found it already inactive"""
        listing = await self.repository.find_by_id(listing_id)
        if not listing:
            return None
        if not actor.is_moderator:
            _require_owner(listing, actor)

        expected = listing.status
        changed = listing.deactivate(actor.actor_id, by_moderator=actor.is_moderator)
        if not changed:
            logger.info("Listing %s already inactive (moderator %s)", listing_id, actor.actor_id)
            return listing, True

        action = ListingAction.MODERATOR_DEACTIVATE if actor.is_moderator else ListingAction.DEACTIVATE
        await self._commit(listing, expected, action, actor)
        return listing, False

    # ==================== MODERATOR ACTIONS ====================
    async def approve(self, listing_id: str, actor: Actor) -> Optional[Listing]:
        _require_moderator(actor, "approve listings")
        listing = await self._apply(
            listing_id, actor, ListingAction.APPROVE,
            lambda listing: listing.approve(actor.actor_id),
        )
        if listing and self.loyalty_service:
            adjustment = await self.loyalty_service.ensure_approval_floor(listing_id)
            if adjustment:
                listing.punti = adjustment.total
        return listing

    async def reject(
        self,
        listing_id: str,
        actor: Actor,
        note: Optional[str] = None,
        attachments: Optional[List[ModerationAttachment]] = None,
    ) -> Optional[Listing]:
        _require_moderator(actor, "reject listings")
        kept = list(attachments or [])
        if len(kept) > self.max_attachments:
            raise TooManyAttachments(len(kept), self.max_attachments)
        return await self._apply(
            listing_id, actor, ListingAction.REJECT,
            lambda listing: listing.reject(actor.actor_id, note, kept),
        )

    async def approve_revision(self, listing_id: str, actor: Actor) -> Optional[Listing]:
        _require_moderator(actor, "approve revisions")
        return await self._apply(
            listing_id, actor, ListingAction.APPROVE_REVISION,
            lambda listing: listing.approve_revision(actor.actor_id),
        )

    async def reject_revision(self, listing_id: str, actor: Actor, note: Optional[str] = None) -> Optional[Listing]:
        _require_moderator(actor, "reject revisions")
        return await self._apply(
            listing_id, actor, ListingAction.REJECT_REVISION,
            lambda listing: listing.reject_revision(actor.actor_id, note),
        )

    async def set_host_suspension(self, host_id: str, actor: Actor, suspend: bool = True) -> Optional[Host]:
        """Toggle the host-level guard; listing statuses are left untouched"""
        _require_moderator(actor, "suspend hosts")
        if host_id == actor.actor_id:
            raise ActionNotPermitted("Moderators cannot suspend their own account")

        host = await self.host_repo.update(host_id, Host.suspend if suspend else Host.unsuspend)
        if host is not None:
            logger.info("Host %s suspended=%s by %s", host_id, host.is_suspended, actor.actor_id)
        return host

    # ==================== PRIVATE METHODS ====================
    async def _apply(
        self,
        listing_id: str,
        actor: Actor,
        action: ListingAction,
        mutate: Callable[[Listing], None],
        owner_only: bool = False,
    ) -> Optional[Listing]:
        listing = await self.repository.find_by_id(listing_id)
        if not listing:
            return None
        if owner_only:
            _require_owner(listing, actor)

        expected = listing.status
        mutate(listing)
        await self._commit(listing, expected, action, actor)
        return listing

    async def _commit(self, listing: Listing, expected, action: ListingAction, actor: Actor) -> None:
        if not await self.repository.update_if_status(listing, expected):
            current = await self.repository.find_by_id(listing.listing_id)
            logger.warning(
                "Lost race on listing %s: %s expected %s, found %s",
                listing.listing_id, action.value, expected.value, current.status.value,
            )
            raise StateViolation(current=current.status.value, requested=action.value)
        logger.info(
            "Listing %s %s -> %s (%s by %s)",
            listing.listing_id, expected.value, listing.status.value, action.value, actor.actor_id,
        )


class BookingQuoteService:
    """Read side for bookable listings: availability and price quotes"""

    def __init__(
        self,
        listing_repo: ListingRepository,
        host_repo: HostRepository,
        reservation_repo: ReservationRepository,
        pricing_resolver: PricingResolver,
        availability_resolver: AvailabilityResolver,
    ):
        self.listing_repo = listing_repo
        self.host_repo = host_repo
        self.reservation_repo = reservation_repo
        self.pricing_resolver = pricing_resolver
        self.availability_resolver = availability_resolver

    async def load_bookable(self, listing_id: str) -> Optional[Listing]:
        """Listing if it may serve bookings; raises ListingUnavailable otherwise"""
        listing = await self.listing_repo.find_by_id(listing_id)
        if not listing:
            return None
        host = await self.host_repo.find_by_id(listing.host_id)
        if host is not None and host.is_suspended:
            raise ListingUnavailable("The host of this listing is suspended")
        if not listing.is_bookable(host):
            raise ListingUnavailable(
                f"Listing is not bookable in status {listing.status.value}",
                {"status": listing.status.value},
            )
        return listing

    async def resolve_availability(
        self,
        listing: Listing,
        on_date: date,
        now: Optional[datetime] = None,
    ) -> AvailabilityResult:
        reservations = await self.reservation_repo.find_by_listing_and_date(listing.listing_id, on_date)
        booked = [r.time for r in reservations if not r.is_cancelled]
        return self.availability_resolver.resolve(
            listing.content.availability_rules,
            on_date,
            hours_in_advance=listing.content.hours_in_advance,
            now=now,
            booked_times=booked,
        )

    def price(self, listing: Listing, guest_count: int) -> PriceQuote:
        if listing.content.pricing is None:
            raise ListingUnavailable("Listing has no pricing configured")
        return self.pricing_resolver.resolve(listing.content.pricing, guest_count)

    async def get_availability(
        self,
        listing_id: str,
        on_date: date,
        now: Optional[datetime] = None,
    ) -> Optional[AvailabilityResult]:
        listing = await self.load_bookable(listing_id)
        if not listing:
            return None
        return await self.resolve_availability(listing, on_date, now)

    async def quote(self, listing_id: str, guest_count: int) -> Optional[PriceQuote]:
        listing = await self.load_bookable(listing_id)
        if not listing:
            return None
        return self.price(listing, guest_count)


class ReservationService:
    """Service for Reservation creation and guest-side requests"""

    def __init__(
        self,
        repository: ReservationRepository,
        quote_service: BookingQuoteService,
        loyalty_service: LoyaltyService,
        platform_repo: PlatformAnalyticsRepository,
        host_earnings_repo: HostEarningsRepository,
        promoter_repo: PromoterAnalyticsRepository,
        notifier: Optional[CancellationNotifier] = None,
    ):
        self.repository = repository
        self.quote_service = quote_service
        self.loyalty_service = loyalty_service
        self.platform_repo = platform_repo
        self.host_earnings_repo = host_earnings_repo
        self.promoter_repo = promoter_repo
        self.notifier = notifier

    async def create_reservation(
        self,
        listing_id: str,
        guest_id: str,
        start_date: date,
        time: str,
        guest_count: int,
        referral_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Reservation]:
        """Quote, freeze the price, persist and record the booking in the ledgers"""
        listing = await self.quote_service.load_bookable(listing_id)
        if not listing:
            return None

        slot = normalize_time(time)
        availability = await self.quote_service.resolve_availability(listing, start_date, now)
        if slot is None or slot not in availability.slots:
            raise SlotUnavailable(
                f"Time {time} is not bookable on {start_date.isoformat()}",
                {"availability": availability.kind.value, "slots": availability.slots},
            )

        quote = self.quote_service.price(listing, guest_count)
        commission = await self.loyalty_service.commission_for(listing)
        platform_fee = round_currency(quote.chargeable_total * Decimal(str(commission)) / 100)
        booked_at = (now or datetime.now(timezone.utc)).date()

        reservation = Reservation(
            listing_id=listing.listing_id,
            host_id=listing.host_id,
            referral_id=referral_id or None,
            guest_id=guest_id,
            guest_count=guest_count,
            start_date=start_date,
            time=slot,
            unit_price=quote.unit_price,
            total_price=quote.chargeable_total,
            price_descriptor=quote.descriptor,
            currency=quote.currency,
            commission_rate=commission,
            platform_fee=platform_fee,
            booked_at=booked_at,
        )
        await self.repository.save(reservation)

        entry_key = booked_entry_key(reservation.reservation_id)
        await self.platform_repo.apply_delta(
            PLATFORM_ACCOUNT_ID, entry_key, booked_at, 1, reservation.total_price, platform_fee
        )
        await self.host_earnings_repo.apply_delta(
            reservation.host_id, entry_key, booked_at, 1, reservation.total_price
        )
        if reservation.referral_id:
            await self.promoter_repo.apply_delta(
                reservation.referral_id, entry_key, booked_at, 1, reservation.total_price
            )

        logger.info(
            "Reservation %s booked on listing %s: %s %s for %s guests",
            reservation.reservation_id, listing_id, reservation.total_price,
            reservation.currency, guest_count,
        )
        return reservation

    async def get_reservation(self, reservation_id: str) -> Optional[Reservation]:
        """Get reservation by ID"""
        return await self.repository.find_by_id(reservation_id)

    async def request_cancellation(self, reservation_id: str, actor: Actor, reason: str) -> Optional[Reservation]:
        """Guest asks for a cancellation; a moderator performs the actual cascade"""
        reservation = await self.repository.find_by_id(reservation_id)
        if not reservation:
            return None
        if actor.actor_id != reservation.guest_id:
            raise ActionNotPermitted("Only the guest who booked can request a cancellation")

        request = reservation.request_cancellation(actor.actor_id, reason)
        if not await self.repository.update_if_status(reservation, ReservationStatus.CONFIRMED):
            # A moderator cancelled it between our read and write
            raise AlreadyCancelled(reservation.reservation_id)
        if self.notifier:
            await self.notifier.cancellation_requested(reservation, request)
        return reservation
